"""
Libris Backend — Profile Route Handlers
========================================

What:  POST /api/register, POST /api/login, GET /api/user.
Who:   Clients obtain their bearer token here before using the Loan API.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from libris.database import get_db_session
from libris.models.user import User
from libris.schemas.common import ErrorResponse
from libris.schemas.user import (
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RegisterResponse,
    UserProfile,
)
from libris.services.profile_service import profile_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["User"])

# auto_error=False: a missing header should produce our 401 body, not
# FastAPI's default 403
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> User:
    """FastAPI dependency resolving the bearer token to a User."""
    token = credentials.credentials if credentials else None
    return await profile_service.authenticate(db, token)


@router.post(
    "/register",
    status_code=201,
    response_model=RegisterResponse,
    responses={
        400: {"description": "Email is already taken", "model": ErrorResponse},
        422: {"description": "Validation failed", "model": ErrorResponse},
        500: {"description": "Registration failed", "model": ErrorResponse},
    },
    summary="Register a new user",
)
async def register(
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db_session),
) -> RegisterResponse:
    return await profile_service.register(db=db, payload=payload)


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={
        401: {"description": "Invalid credentials", "model": ErrorResponse},
        404: {"description": "Invalid credentials", "model": ErrorResponse},
    },
    summary="Login user",
)
async def login(
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
) -> LoginResponse:
    return await profile_service.login(db=db, payload=payload)


@router.get(
    "/user",
    response_model=UserProfile,
    responses={401: {"description": "Unauthenticated", "model": ErrorResponse}},
    summary="Current user's profile",
)
async def current_user(user: User = Depends(get_current_user)) -> UserProfile:
    return UserProfile.model_validate(user)
