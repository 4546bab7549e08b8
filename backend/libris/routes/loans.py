"""
Libris Backend — Loan Route Handlers
=====================================

What:  POST /api/loan/create and POST /api/loans/return/{loan_id}.
How:   Body/path parsing by FastAPI, everything else delegated to LoanService.
       Errors are raised as LibrisError subclasses and formatted by the
       global handlers in main.py.

Note:  These endpoints do not check the bearer token issued by the Profile
       service. Callers are assumed to be authenticated upstream.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from libris.database import get_db_session
from libris.schemas.common import ErrorResponse
from libris.schemas.loan import LoanActionResponse, LoanCreate, LoanResponse
from libris.services.loan_service import loan_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Loan"])


@router.post(
    "/loan/create",
    status_code=201,
    response_model=LoanActionResponse,
    responses={
        201: {"description": "Loan created successfully", "model": LoanActionResponse},
        400: {"description": "Invalid book ID", "model": ErrorResponse},
        422: {"description": "Validation failed", "model": ErrorResponse},
    },
    summary="Create a new loan (borrow book)",
)
async def create_loan(
    payload: LoanCreate,
    db: AsyncSession = Depends(get_db_session),
) -> LoanActionResponse:
    """
    Borrow a book.

    The Book service is asked whether the book exists before anything is
    stored; after the loan is stored the Book service is told to decrement
    availability (best-effort, outcome not reported).
    """
    loan = await loan_service.create_loan(db=db, payload=payload)
    return LoanActionResponse(
        message="Loan created successfully",
        loan=LoanResponse.model_validate(loan),
    )


@router.post(
    "/loans/return/{loan_id}",
    response_model=LoanActionResponse,
    responses={
        200: {"description": "Book returned successfully", "model": LoanActionResponse},
        400: {"description": "Book already returned or not borrowed", "model": ErrorResponse},
        404: {"description": "Loan not found", "model": ErrorResponse},
    },
    summary="Return a borrowed book",
)
async def return_loan(
    loan_id: int,
    db: AsyncSession = Depends(get_db_session),
) -> LoanActionResponse:
    loan = await loan_service.return_loan(db=db, loan_id=loan_id)
    return LoanActionResponse(
        message="Book returned successfully",
        loan=LoanResponse.model_validate(loan),
    )
