"""
Libris Backend — Loan Request/Response Schemas
===============================================

What:  Pydantic models defining the Loan API contract.
Why:   Strict input validation, automatic serialization, and OpenAPI docs.
How:   LoanCreate is both the request body model of POST /api/loan/create
       and the validator LoanService runs on raw mappings, so the HTTP layer
       and direct service callers share one set of rules.

Validation rules (create):
    user_id      required, non-empty string
    book_id      required, non-empty string
    borrowed_at  required, calendar date (YYYY-MM-DD)
    due_date     required, calendar date, on or after borrowed_at
    status       required, one of: borrowed, returned
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from libris.models.loan import LoanStatus


class LoanCreate(BaseModel):
    """Body of POST /api/loan/create."""

    user_id: str = Field(min_length=1, max_length=255, description="Borrowing user's id")
    book_id: str = Field(min_length=1, max_length=255, description="Borrowed book's id")
    borrowed_at: date = Field(description="Date the book was borrowed")
    due_date: date = Field(description="Date the book is due back (>= borrowed_at)")
    status: LoanStatus = Field(description="Initial status: borrowed or returned")

    model_config = {"str_strip_whitespace": True}

    @field_validator("due_date")
    @classmethod
    def due_date_not_before_borrowed_at(cls, v: date, info: ValidationInfo) -> date:
        # borrowed_at is absent from info.data when it failed its own validation
        borrowed_at = info.data.get("borrowed_at")
        if borrowed_at is not None and v < borrowed_at:
            raise ValueError("The due date must be a date after or equal to borrowed_at.")
        return v


class LoanResponse(BaseModel):
    """Serialized loan as returned by both loan endpoints."""

    id: int
    user_id: str
    book_id: str
    borrowed_at: date
    due_date: date
    returned_at: Optional[datetime] = None
    status: LoanStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LoanActionResponse(BaseModel):
    """
    Envelope for create (201) and return (200).

    Example:
        {"message": "Loan created successfully", "loan": {...}}
    """

    message: str = Field(description="Human-readable outcome")
    loan: LoanResponse
