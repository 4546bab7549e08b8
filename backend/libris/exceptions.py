"""
Libris Backend — Custom Exception Hierarchy
============================================

What:  Defines application-specific exceptions for different error scenarios.
Why:   Custom exceptions enable targeted error handling with appropriate HTTP
       status codes and user-friendly messages.
How:   Each exception class carries a message, an optional context dict, an
       HTTP status code and a machine-readable error code. Global exception
       handlers (registered in main.py) turn them into JSON responses.
Who:   Raised by services; caught by global handlers.

Exception Hierarchy:
    LibrisError (base)                     → 500
    ├── ValidationError                    → 422 Unprocessable Entity (field errors)
    ├── InvalidBookError                   → 400 Bad Request
    ├── InvalidStateError                  → 400 Bad Request
    ├── EmailTakenError                    → 400 Bad Request
    ├── NotFoundError                      → 404 Not Found
    │   ├── LoanNotFoundError
    │   └── UnknownAccountError
    ├── AuthenticationError                → 401 Unauthorized
    ├── DependencyError                    → never surfaced (absorbed by InventoryClient)
    └── DatabaseError                      → 500 Internal Server Error
"""

from typing import Any, Dict, List, Optional, Sequence


class LibrisError(Exception):
    """
    Base exception for all Libris application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    status_code = 500
    error_code = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(LibrisError):
    """
    Raised when client input fails validation.

    HTTP:    422 Unprocessable Entity

    The `errors` mapping follows the field → list-of-messages layout API
    consumers already parse:

        {
            "message": "Validation failed",
            "errors": {"due_date": ["due_date must be on or after borrowed_at"]}
        }
    """

    status_code = 422
    error_code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        errors: Optional[Dict[str, List[str]]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
        self.errors = errors or {}

    @classmethod
    def from_pydantic(cls, raw_errors: Sequence[Dict[str, Any]]) -> "ValidationError":
        """
        Build a ValidationError from pydantic's `errors()` list.

        The location prefix FastAPI adds ("body", "path", "query") is dropped so
        the field key matches the JSON attribute name.
        """
        errors: Dict[str, List[str]] = {}
        for err in raw_errors:
            loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "path", "query")]
            field = ".".join(loc) or "__root__"
            msg = err.get("msg", "Invalid value")
            # pydantic prefixes messages raised from validators
            if msg.startswith("Value error, "):
                msg = msg[len("Value error, "):]
            errors.setdefault(field, []).append(msg)
        return cls(errors=errors)


class InvalidBookError(LibrisError):
    """
    Raised when the referenced book fails the inventory existence check.

    HTTP:    400 Bad Request
    Note:    An unreachable inventory service also ends up here: the client
             cannot tell "no such book" apart from "could not ask".
    """

    status_code = 400
    error_code = "invalid_book"

    def __init__(self, book_id: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        if book_id is not None:
            ctx["book_id"] = book_id
        super().__init__(message="Invalid book ID", context=ctx)


class InvalidStateError(LibrisError):
    """Raised when a loan transition is not legal from its current status."""

    status_code = 400
    error_code = "invalid_state"

    def __init__(
        self,
        message: str = "Book has already been returned or is not borrowed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class EmailTakenError(LibrisError):
    status_code = 400
    error_code = "email_taken"

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(message="Email is already taken.", context=context)


class NotFoundError(LibrisError):
    """
    Raised when a requested resource does not exist.

    HTTP:    404 Not Found

    SQLAlchemy returns None for missing records (not an exception).
    The service layer converts None → NotFoundError.
    """

    status_code = 404
    error_code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = f"The requested {resource} was not found"
            if resource_id:
                message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class LoanNotFoundError(NotFoundError):
    def __init__(self, loan_id: Any = None):
        super().__init__(
            resource="loan",
            resource_id=None if loan_id is None else str(loan_id),
            message="Loan not found",
        )


class UnknownAccountError(NotFoundError):
    """Login with an email that has no account. Message stays generic."""

    def __init__(self, email: Optional[str] = None):
        super().__init__(
            resource="user",
            message="Invalid credentials",
            context={"email": email} if email else None,
        )


class AuthenticationError(LibrisError):
    """
    Raised for a wrong password or a missing, unknown or expired token.

    HTTP:    401 Unauthorized
    """

    status_code = 401
    error_code = "unauthenticated"

    def __init__(
        self,
        message: str = "Unauthenticated.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DependencyError(LibrisError):
    """
    Raised inside InventoryClient when a call to the Book service fails.

    What:    Transport error, timeout, or a non-success HTTP status.
    Never leaves InventoryClient: the existence check folds it into False,
    the availability signals fold it into an undelivered SignalResult.
    """

    status_code = 502
    error_code = "dependency_error"

    def __init__(
        self,
        message: str = "Inventory service call failed",
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if status_code is not None:
            ctx["upstream_status"] = status_code
        super().__init__(message=message, context=ctx)
        self.upstream_status = status_code


class DatabaseError(LibrisError):
    """
    Raised when database operations fail unexpectedly.

    Security Note:
        The message returned to the client is always generic.
        Detailed error info is logged server-side only.
    """

    status_code = 500
    error_code = "server_error"

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
