"""
Libris Backend — Loan SQLAlchemy Model
=======================================

What:  ORM model representing the `loans` table.
Why:   Maps one borrowing event (one user, one book) to a database row.
Who:   Written and read exclusively through LoanStore; Alembic reads it for migrations.

Table Design Rationale:
    - Integer autoincrement id: the identifier callers put in
      POST /api/loans/return/{id}
    - user_id / book_id: opaque strings owned by the Profile and Book
      services; no foreign keys because those rows live in other databases
    - borrowed_at / due_date: calendar dates supplied by the caller
    - returned_at: full timestamp, set by the return transition only
    - status: 'borrowed' | 'returned'
"""

import enum
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Date, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from libris.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LoanStatus(str, enum.Enum):
    """
    Loan state machine:

        borrowed ──ReturnLoan──▶ returned   (terminal)
    """

    BORROWED = "borrowed"
    RETURNED = "returned"


class Loan(Base):
    """
    Represents one borrowing event.

    Lifecycle:
        1. Created by LoanService.create_loan with the caller's status
        2. Mutated once by LoanService.return_loan (borrowed → returned)
        3. Never deleted
    """

    __tablename__ = "loans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    book_id: Mapped[str] = mapped_column(String(255), nullable=False)

    borrowed_at: Mapped[date] = mapped_column(Date, nullable=False)
    # Invariant (enforced by LoanCreate): due_date >= borrowed_at
    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    # NULL until the loan is returned
    returned_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
    )

    # Stored as plain VARCHAR rather than a DB enum so the Alembic migration
    # stays portable between PostgreSQL and SQLite.
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=LoanStatus.BORROWED.value,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (
        Index("idx_loans_book_id", "book_id"),
        Index("idx_loans_user_id", "user_id"),
    )

    @property
    def is_borrowed(self) -> bool:
        return self.status == LoanStatus.BORROWED.value

    def __repr__(self) -> str:
        return (
            f"<Loan(id={self.id}, book_id='{self.book_id}', "
            f"user_id='{self.user_id}', status='{self.status}')>"
        )
