"""
Libris Backend — Loan Service (Lifecycle Orchestrator)
=======================================================

What:  Validates loan state transitions, coordinates with the Book service,
       and commits changes through LoanStore.
Why:   The only component with real branching; routes stay thin and the
       Book-service policy stays inside InventoryClient.
Who:   Called by the loan route handlers.

Orchestration Flow (POST /api/loan/create):
    ┌──────────┐    ┌──────────────┐    ┌──────────┐    ┌──────────────┐
    │ Validate │───▶│ Book exists? │───▶│  Store   │───▶│  Decrement   │
    │ (schema) │    │ (Inventory)  │    │  (DB)    │    │ (best-effort)│
    └──────────┘    └──────────────┘    └──────────┘    └──────────────┘
         │ 422             │ 400

Orchestration Flow (POST /api/loans/return/{id}):
    ┌──────────┐    ┌──────────────┐    ┌──────────┐    ┌──────────────┐
    │   Find   │───▶│ Is borrowed? │───▶│  Update  │───▶│  Increment   │
    │  (DB)    │    │              │    │  (DB)    │    │ (best-effort)│
    └──────────┘    └──────────────┘    └──────────┘    └──────────────┘
         │ 404             │ 400

Ordering: every check precedes every write, and the write is committed before
the Book service is signalled. A lost signal never undoes a committed write.

Concurrency:
    By default two concurrent returns of the same loan can both read
    status='borrowed' before either writes, and both will signal an
    increment. Setting LOAN_RETURN_COMPARE_AND_SWAP=true writes the
    transition as a conditional update instead; the loser of the race gets
    InvalidStateError.
"""

import logging
from datetime import datetime, time, timezone
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from libris.config import settings
from libris.exceptions import (
    InvalidBookError,
    InvalidStateError,
    LoanNotFoundError,
    ValidationError,
)
from libris.models.loan import Loan, LoanStatus, utcnow
from libris.schemas.loan import LoanCreate
from libris.services.inventory_client import InventoryClient, inventory_client
from libris.services.loan_store import LoanStore

logger = logging.getLogger(__name__)


class LoanService:
    """
    Business logic layer for loans.

    Stateless apart from the inventory client it was built with; the store is
    created per call from the request's session.
    """

    def __init__(self, inventory: Optional[InventoryClient] = None):
        self.inventory = inventory or inventory_client

    def store_for(self, db: AsyncSession) -> LoanStore:
        return LoanStore(db)

    async def create_loan(
        self,
        db: AsyncSession,
        payload: Union[LoanCreate, Mapping[str, Any]],
    ) -> Loan:
        """
        Create a loan (borrow a book).

        Args:
            db:      Async database session
            payload: LoanCreate (already validated by FastAPI) or a raw mapping

        Returns:
            The stored Loan with the caller's status and returned_at = None

        Raises:
            ValidationError:  Input failed validation (nothing else happened)
            InvalidBookError: Book service did not confirm the book
            DatabaseError:    The insert failed
        """
        data = self._validate(payload)

        if not await self.inventory.check_book_exists(data.book_id):
            logger.info("Loan rejected: book %s not confirmed by inventory", data.book_id)
            raise InvalidBookError(book_id=data.book_id)

        if data.status is LoanStatus.RETURNED:
            # Accepted as-is; such a loan carries no returned_at and can never
            # be returned, yet inventory is still decremented below.
            logger.warning(
                "Loan for book %s created with initial status 'returned'", data.book_id
            )

        loan = Loan(
            user_id=data.user_id,
            book_id=data.book_id,
            borrowed_at=data.borrowed_at,
            due_date=data.due_date,
            returned_at=None,
            status=data.status.value,
        )
        loan = await self.store_for(db).create(loan)

        # Best-effort: the loan exists whatever the outcome
        await self.inventory.decrement_availability(loan.book_id)

        return loan

    async def return_loan(self, db: AsyncSession, loan_id: int) -> Loan:
        """
        Return a borrowed book: borrowed → returned.

        Raises:
            LoanNotFoundError: No loan with this id
            InvalidStateError: Loan is not in 'borrowed' status
            DatabaseError:     The update failed
        """
        store = self.store_for(db)

        loan = await store.find_by_id(loan_id)
        if loan is None:
            raise LoanNotFoundError(loan_id)

        if not loan.is_borrowed:
            raise InvalidStateError(context={"loan_id": loan_id, "status": loan.status})

        returned_at = self._return_timestamp(loan)

        if settings.loan_return_compare_and_swap:
            changed = await store.update_status_if(
                loan,
                expected=LoanStatus.BORROWED.value,
                status=LoanStatus.RETURNED.value,
                returned_at=returned_at,
            )
            if not changed:
                logger.warning("Loan %s was returned concurrently", loan_id)
                raise InvalidStateError(context={"loan_id": loan_id, "race": True})
        else:
            loan.returned_at = returned_at
            loan.status = LoanStatus.RETURNED.value
            await store.update(loan)

        logger.info("Loan %s returned (book=%s)", loan.id, loan.book_id)

        # Best-effort: the return stands whatever the outcome
        await self.inventory.increment_availability(loan.book_id)

        return loan

    # ── Helpers ───────────────────────────────────────────────────────────

    @staticmethod
    def _validate(payload: Union[LoanCreate, Mapping[str, Any]]) -> LoanCreate:
        if isinstance(payload, LoanCreate):
            return payload
        try:
            return LoanCreate.model_validate(dict(payload))
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e.errors())

    @staticmethod
    def _return_timestamp(loan: Loan) -> datetime:
        """
        Current UTC time, but never before the start of the borrow date.

        Loans may be created with a future borrowed_at; returned_at must
        still not precede it.
        """
        now = utcnow()
        borrowed_start = datetime.combine(loan.borrowed_at, time.min, tzinfo=timezone.utc)
        return max(now, borrowed_start)


# ── Singleton Instance ────────────────────────────────────────────────────
loan_service = LoanService()
