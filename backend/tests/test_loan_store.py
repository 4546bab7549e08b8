"""
Libris Backend — Loan Store Tests
==================================

What:  LoanStore against a real (temporary SQLite) database.

What we test:
    ✅ create assigns an id and timestamps and is visible from another session
    ✅ find_by_id returns None for a missing loan
    ✅ update persists the return transition
    ✅ update_status_if writes only while the expected status holds
"""

from datetime import date

import pytest

from libris.database import async_session_factory
from libris.models.loan import Loan, LoanStatus, utcnow
from libris.services.loan_store import LoanStore


def new_loan(**overrides) -> Loan:
    values = dict(
        user_id="u1",
        book_id="b1",
        borrowed_at=date(2024, 1, 1),
        due_date=date(2024, 1, 15),
        status=LoanStatus.BORROWED.value,
    )
    values.update(overrides)
    return Loan(**values)


class TestLoanStore:

    @pytest.mark.asyncio
    async def test_create_assigns_id_and_commits(self, db_session):
        loan = await LoanStore(db_session).create(new_loan())

        assert isinstance(loan.id, int)
        assert loan.created_at is not None
        assert loan.returned_at is None

        async with async_session_factory() as other:
            stored = await LoanStore(other).find_by_id(loan.id)
        assert stored is not None
        assert stored.book_id == "b1"
        assert stored.borrowed_at == date(2024, 1, 1)

    @pytest.mark.asyncio
    async def test_ids_are_distinct(self, db_session):
        store = LoanStore(db_session)
        first = await store.create(new_loan())
        second = await store.create(new_loan(book_id="b2"))

        assert first.id != second.id

    @pytest.mark.asyncio
    async def test_find_missing_returns_none(self, db_session):
        assert await LoanStore(db_session).find_by_id(12345) is None

    @pytest.mark.asyncio
    async def test_find_out_of_range_id_returns_none(self, db_session):
        store = LoanStore(db_session)

        assert await store.find_by_id(2 ** 63) is None
        assert await store.find_by_id(-(2 ** 63) - 1) is None

    @pytest.mark.asyncio
    async def test_update_persists_return(self, db_session):
        store = LoanStore(db_session)
        loan = await store.create(new_loan())

        loan.status = LoanStatus.RETURNED.value
        loan.returned_at = utcnow()
        await store.update(loan)

        async with async_session_factory() as other:
            stored = await LoanStore(other).find_by_id(loan.id)
        assert stored.status == "returned"
        assert stored.returned_at is not None

    @pytest.mark.asyncio
    async def test_conditional_update_wins_once(self, db_session):
        store = LoanStore(db_session)
        loan = await store.create(new_loan())

        changed = await store.update_status_if(
            loan, expected="borrowed", status="returned", returned_at=utcnow()
        )

        assert changed is True
        assert loan.status == "returned"
        assert loan.is_borrowed is False
        assert loan.returned_at is not None

        async with async_session_factory() as other:
            stale = await LoanStore(other).find_by_id(loan.id)
            again = await LoanStore(other).update_status_if(
                stale, expected="borrowed", status="returned", returned_at=utcnow()
            )
        assert again is False
