"""
Libris Backend — Profile Service (Registration, Login, Tokens)
===============================================================

What:  User registration, credential check, and bearer-token issuance.
Why:   Callers of the Loan API are expected to hold a token from here.
How:   Passwords hashed with werkzeug.security; tokens are random secrets
       of which only a SHA-256 digest is stored, handed out as "<id>|<secret>"
       and valid for settings.token_ttl_minutes.
Who:   Called by the profile route handlers.

Error mapping (part of the public API contract):
    register, email already used   → EmailTakenError      (400)
    login, unknown email           → UnknownAccountError  (404, "Invalid credentials")
    login, wrong password          → AuthenticationError  (401, "Invalid credentials")
    bearer token bad or expired    → AuthenticationError  (401)
"""

import hashlib
import hmac
import json
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from werkzeug.security import check_password_hash, generate_password_hash

from libris.config import settings
from libris.exceptions import (
    AuthenticationError,
    DatabaseError,
    EmailTakenError,
    UnknownAccountError,
    ValidationError,
)
from libris.models.loan import utcnow
from libris.models.user import PersonalAccessToken, User
from libris.schemas.user import (
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RegisterResponse,
    UserProfile,
)

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def _digest(secret: str) -> str:
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ProfileService:
    """Business logic for the Profile service. Stateless."""

    async def register(
        self,
        db: AsyncSession,
        payload: Union[RegisterRequest, Mapping[str, Any]],
    ) -> RegisterResponse:
        """
        Register a new user.

        Raises:
            ValidationError: Bad input
            EmailTakenError: Email already registered
            DatabaseError:   Insert failed ("Registration failed")
        """
        data = self._validate(RegisterRequest, payload)
        email = str(data.email)

        if await self._find_by_email(db, email) is not None:
            raise EmailTakenError(context={"email": email})

        user = User(
            id=str(uuid.uuid4()),
            name=data.name,
            email=email,
            password=generate_password_hash(data.password),
            address=data.address,
        )
        try:
            db.add(user)
            await db.flush()
            await db.commit()
        except IntegrityError:
            # Lost a race against a concurrent registration of the same email
            await db.rollback()
            raise EmailTakenError(context={"email": email})
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("User registration failed: %s", str(e), exc_info=True)
            raise DatabaseError(message="Registration failed")

        logger.info("User %s registered", user.id)
        return RegisterResponse(data=UserProfile.model_validate(user))

    async def login(
        self,
        db: AsyncSession,
        payload: Union[LoginRequest, Mapping[str, Any]],
    ) -> LoginResponse:
        """
        Check credentials and issue a bearer token.

        Raises:
            UnknownAccountError: No account for this email
            AuthenticationError: Password does not match
        """
        data = self._validate(LoginRequest, payload)

        user = await self._find_by_email(db, str(data.email))
        if user is None:
            raise UnknownAccountError(email=str(data.email))

        if not check_password_hash(user.password, data.password):
            logger.info("Failed login for user %s", user.id)
            raise AuthenticationError(message="Invalid credentials")

        token = await self.issue_token(db, user)
        return LoginResponse(token=token, user=UserProfile.model_validate(user))

    async def issue_token(self, db: AsyncSession, user: User) -> str:
        """Create a personal access token and return its plain-text form."""
        secret = secrets.token_urlsafe(30)
        record = PersonalAccessToken(
            user_id=user.id,
            name=settings.token_name,
            token=_digest(secret),
            abilities=json.dumps(["*"]),
            expires_at=utcnow() + timedelta(minutes=settings.token_ttl_minutes),
        )
        try:
            db.add(record)
            await db.flush()
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Token issuance failed: %s", str(e), exc_info=True)
            raise DatabaseError()
        return f"{record.id}|{secret}"

    async def authenticate(self, db: AsyncSession, plain_token: Optional[str]) -> User:
        """
        Resolve a bearer token to its user.

        Raises:
            AuthenticationError: Missing, malformed, unknown or expired token
        """
        if not plain_token or "|" not in plain_token:
            raise AuthenticationError()

        token_id, secret = plain_token.split("|", 1)
        if not token_id.isdigit() or not secret:
            raise AuthenticationError()

        record = await db.get(PersonalAccessToken, int(token_id))
        if record is None or not hmac.compare_digest(record.token, _digest(secret)):
            raise AuthenticationError()

        now = utcnow()
        if record.expires_at is not None and _as_utc(record.expires_at) <= now:
            raise AuthenticationError(context={"token_id": record.id, "expired": True})

        user = await db.get(User, record.user_id)
        if user is None:
            raise AuthenticationError()

        record.last_used_at = now
        await db.flush()
        return user

    # ── Helpers ───────────────────────────────────────────────────────────

    @staticmethod
    async def _find_by_email(db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    @staticmethod
    def _validate(schema: Type[SchemaT], payload: Union[BaseModel, Mapping[str, Any]]) -> SchemaT:
        if isinstance(payload, schema):
            return payload
        try:
            return schema.model_validate(dict(payload))
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e.errors())


# ── Singleton Instance ────────────────────────────────────────────────────
profile_service = ProfileService()
