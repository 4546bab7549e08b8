"""
Libris Backend — Loan Store
============================

What:  Persistence abstraction over loan records (create, find, update).
Why:   Keeps SQLAlchemy out of the lifecycle logic; LoanService only sees
       whole Loan objects going in and out.
How:   Wraps the request's AsyncSession. Every mutating call commits on its
       own, so each create/update is all-or-nothing and is durable before the
       caller goes on to signal the Book service.

No cross-call transactions: create_loan's decrement and return_loan's
increment happen after the commit and are never rolled back with it.
"""

import logging
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from libris.exceptions import DatabaseError
from libris.models.loan import Loan, utcnow

logger = logging.getLogger(__name__)

# Range of a signed 64-bit INTEGER / BIGINT column
MIN_LOAN_ID = -(2 ** 63)
MAX_LOAN_ID = 2 ** 63 - 1


class LoanStore:
    """Per-request handle; never cached between requests."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, loan: Loan) -> Loan:
        """Insert `loan`, assign id and timestamps, commit."""
        try:
            self.session.add(loan)
            await self.session.flush()
            await self.session.commit()
        except SQLAlchemyError as e:
            await self._rollback("create", e)
        logger.info("Loan %s stored (book=%s, user=%s)", loan.id, loan.book_id, loan.user_id)
        return loan

    async def find_by_id(self, loan_id: int) -> Optional[Loan]:
        """Point lookup; None when no such loan exists."""
        if not MIN_LOAN_ID <= loan_id <= MAX_LOAN_ID:
            return None
        try:
            result = await self.session.execute(select(Loan).where(Loan.id == loan_id))
        except SQLAlchemyError as e:
            logger.error("Database error fetching loan %s: %s", loan_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the loan. Please try again.",
                context={"loan_id": loan_id},
            )
        return result.scalar_one_or_none()

    async def update(self, loan: Loan) -> Loan:
        """Persist the mutated fields of an existing loan, commit."""
        try:
            self.session.add(loan)
            await self.session.flush()
            await self.session.commit()
        except SQLAlchemyError as e:
            await self._rollback("update", e, loan_id=loan.id)
        return loan

    async def update_status_if(self, loan: Loan, expected: str, **values: Any) -> bool:
        """
        Conditional update: write `values` only while the row still has
        status == expected.

        Returns:
            True if this call changed the row; False if another writer got
            there first (the row no longer has the expected status).
        """
        values.setdefault("updated_at", utcnow())
        stmt = (
            update(Loan)
            .where(Loan.id == loan.id, Loan.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self._rollback("conditional update", e, loan_id=loan.id)

        if result.rowcount != 1:
            return False

        # synchronize_session=False: mirror the written values on the instance
        # without marking it dirty
        for key, value in values.items():
            set_committed_value(loan, key, value)
        return True

    async def _rollback(self, operation: str, error: Exception, **context: Any) -> None:
        await self.session.rollback()
        logger.error("Loan %s failed: %s", operation, str(error), exc_info=True)
        raise DatabaseError(
            message="Could not save the loan. Please try again.",
            context={"operation": operation, "error_type": type(error).__name__, **context},
        )
