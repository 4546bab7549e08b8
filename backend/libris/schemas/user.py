"""
Libris Backend — Profile Request/Response Schemas
==================================================

What:  Pydantic models for registration, login and the current-user profile.
Why:   The password hash and token digests never leave the service; these
       models list exactly what a client is allowed to see.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator

from libris.config import settings


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=1)
    address: str = Field(min_length=1)

    model_config = {"str_strip_whitespace": True}

    @field_validator("password")
    @classmethod
    def password_long_enough(cls, v: str) -> str:
        if len(v) < settings.password_min_length:
            raise ValueError(
                f"The password must be at least {settings.password_min_length} characters."
            )
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class UserProfile(BaseModel):
    """Public view of a user (no password, no tokens)."""

    id: str
    name: str
    email: str
    address: str

    model_config = {"from_attributes": True}


class RegisterResponse(BaseModel):
    message: str = "User registered successfully"
    data: UserProfile


class LoginResponse(BaseModel):
    message: str = "Login successful"
    token: str = Field(description="Bearer token, '<id>|<secret>'")
    user: UserProfile
