"""
Libris Backend — Loan Service Unit Tests
=========================================

What:  Tests for LoanService business logic (create, return).
Why:   The orchestrator owns the ordering guarantees: checks before writes,
       writes committed before the Book service is signalled.
How:   Mock store and FakeInventory share one event log, so each test can
       assert what happened and in which order. No DB, no network.

What we test:
    ✅ Create: validate → existence check → store → decrement
    ✅ Create: invalid input and unconfirmed book stop before any write
    ✅ Create: undelivered decrement does not change the outcome
    ✅ Return: find → status check → update → increment
    ✅ Return: missing loan → LoanNotFoundError; returned loan → InvalidStateError
    ✅ Return: compare-and-swap mode and its lost race
    ✅ Return timestamp never precedes the borrow date
"""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeInventory
from libris.config import settings
from libris.exceptions import (
    InvalidBookError,
    InvalidStateError,
    LoanNotFoundError,
    ValidationError,
)
from libris.models.loan import Loan, LoanStatus
from libris.schemas.loan import LoanCreate
from libris.services.loan_service import LoanService


def make_loan(**overrides) -> Loan:
    values = dict(
        id=7,
        user_id="u1",
        book_id="b1",
        borrowed_at=date(2024, 1, 1),
        due_date=date(2024, 1, 15),
        returned_at=None,
        status=LoanStatus.BORROWED.value,
    )
    values.update(overrides)
    return Loan(**values)


def make_store(events, found=None, swap_result=True):
    store = MagicMock()

    async def create(loan):
        events.append(("store", loan.book_id))
        loan.id = 1
        return loan

    async def update(loan):
        events.append(("update", loan.id))
        return loan

    async def update_status_if(loan, expected, **values):
        events.append(("update_if", loan.id))
        if swap_result:
            for key, value in values.items():
                setattr(loan, key, value)
        return swap_result

    store.create = AsyncMock(side_effect=create)
    store.find_by_id = AsyncMock(return_value=found)
    store.update = AsyncMock(side_effect=update)
    store.update_status_if = AsyncMock(side_effect=update_status_if)
    return store


class TestLoanServiceCreate:
    """Tests for the create_loan workflow."""

    def setup_method(self):
        self.inventory = FakeInventory()
        self.service = LoanService(inventory=self.inventory)
        self.store = make_store(self.inventory.calls)
        self.service.store_for = MagicMock(return_value=self.store)

    @pytest.mark.asyncio
    async def test_create_loan_success(self, mock_db_session, loan_payload):
        """Check, then store, then decrement."""
        loan = await self.service.create_loan(db=mock_db_session, payload=loan_payload)

        assert loan.id == 1
        assert loan.status == "borrowed"
        assert loan.returned_at is None
        assert loan.borrowed_at == date(2024, 1, 1)
        assert self.inventory.calls == [
            ("check", "b1"),
            ("store", "b1"),
            ("decrement", "b1"),
        ]

    @pytest.mark.asyncio
    async def test_create_accepts_parsed_schema(self, mock_db_session, loan_payload):
        payload = LoanCreate.model_validate(loan_payload)

        loan = await self.service.create_loan(db=mock_db_session, payload=payload)

        assert loan.user_id == "u1"
        self.store.create.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_due_date_before_borrowed_at_is_rejected(self, mock_db_session, loan_payload):
        loan_payload["due_date"] = "2023-12-31"

        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_loan(db=mock_db_session, payload=loan_payload)

        assert "due_date" in exc_info.value.errors
        assert self.inventory.calls == []

    @pytest.mark.asyncio
    async def test_unknown_status_is_rejected(self, mock_db_session, loan_payload):
        loan_payload["status"] = "lost"

        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_loan(db=mock_db_session, payload=loan_payload)

        assert "status" in exc_info.value.errors
        self.store.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_fields_are_all_reported(self, mock_db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_loan(db=mock_db_session, payload={"user_id": "u1"})

        assert set(exc_info.value.errors) == {"book_id", "borrowed_at", "due_date", "status"}

    @pytest.mark.asyncio
    async def test_unconfirmed_book_stops_before_store(self, mock_db_session, loan_payload):
        loan_payload["book_id"] = "b404"

        with pytest.raises(InvalidBookError) as exc_info:
            await self.service.create_loan(db=mock_db_session, payload=loan_payload)

        assert exc_info.value.message == "Invalid book ID"
        assert self.inventory.calls == [("check", "b404")]

    @pytest.mark.asyncio
    async def test_undelivered_decrement_still_returns_loan(self, mock_db_session, loan_payload):
        self.inventory.deliver_signals = False

        loan = await self.service.create_loan(db=mock_db_session, payload=loan_payload)

        assert loan.id == 1
        assert self.inventory.actions("decrement") == ["b1"]

    @pytest.mark.asyncio
    async def test_initial_status_returned_is_accepted(self, mock_db_session, loan_payload):
        loan_payload["status"] = "returned"

        loan = await self.service.create_loan(db=mock_db_session, payload=loan_payload)

        assert loan.status == "returned"
        assert loan.returned_at is None
        assert self.inventory.actions("decrement") == ["b1"]


class TestLoanServiceReturn:
    """Tests for the return_loan workflow."""

    def setup_method(self):
        self.inventory = FakeInventory()
        self.service = LoanService(inventory=self.inventory)

    def use_store(self, **kwargs):
        store = make_store(self.inventory.calls, **kwargs)
        self.service.store_for = MagicMock(return_value=store)
        return store

    @pytest.mark.asyncio
    async def test_return_success(self, mock_db_session):
        """Update, then increment."""
        loan = make_loan()
        store = self.use_store(found=loan)

        result = await self.service.return_loan(db=mock_db_session, loan_id=7)

        assert result is loan
        assert result.status == "returned"
        assert result.returned_at is not None
        store.find_by_id.assert_awaited_once_with(7)
        assert self.inventory.calls == [("update", 7), ("increment", "b1")]

    @pytest.mark.asyncio
    async def test_missing_loan_raises_not_found(self, mock_db_session):
        self.use_store(found=None)

        with pytest.raises(LoanNotFoundError) as exc_info:
            await self.service.return_loan(db=mock_db_session, loan_id=999)

        assert exc_info.value.message == "Loan not found"
        assert self.inventory.calls == []

    @pytest.mark.asyncio
    async def test_already_returned_raises_invalid_state(self, mock_db_session):
        returned_at = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)
        loan = make_loan(status="returned", returned_at=returned_at)
        store = self.use_store(found=loan)

        with pytest.raises(InvalidStateError) as exc_info:
            await self.service.return_loan(db=mock_db_session, loan_id=7)

        assert exc_info.value.message == "Book has already been returned or is not borrowed"
        assert loan.returned_at == returned_at
        store.update.assert_not_awaited()
        assert self.inventory.calls == []

    @pytest.mark.asyncio
    async def test_undelivered_increment_still_returns_loan(self, mock_db_session):
        self.inventory.deliver_signals = False
        self.use_store(found=make_loan())

        result = await self.service.return_loan(db=mock_db_session, loan_id=7)

        assert result.status == "returned"
        assert self.inventory.actions("increment") == ["b1"]

    @pytest.mark.asyncio
    async def test_future_borrow_date_clamps_returned_at(self, mock_db_session):
        future = (datetime.now(timezone.utc) + timedelta(days=30)).date()
        self.use_store(found=make_loan(borrowed_at=future, due_date=future + timedelta(days=14)))

        result = await self.service.return_loan(db=mock_db_session, loan_id=7)

        assert result.returned_at == datetime(future.year, future.month, future.day, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_compare_and_swap_mode_uses_conditional_update(self, mock_db_session, monkeypatch):
        monkeypatch.setattr(settings, "loan_return_compare_and_swap", True)
        store = self.use_store(found=make_loan())

        result = await self.service.return_loan(db=mock_db_session, loan_id=7)

        assert result.status == "returned"
        store.update.assert_not_awaited()
        assert store.update_status_if.await_args.kwargs["expected"] == "borrowed"
        assert self.inventory.calls == [("update_if", 7), ("increment", "b1")]

    @pytest.mark.asyncio
    async def test_compare_and_swap_lost_race(self, mock_db_session, monkeypatch):
        monkeypatch.setattr(settings, "loan_return_compare_and_swap", True)
        self.use_store(found=make_loan(), swap_result=False)

        with pytest.raises(InvalidStateError):
            await self.service.return_loan(db=mock_db_session, loan_id=7)

        assert self.inventory.actions("increment") == []
