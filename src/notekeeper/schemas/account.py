"""Pydantic schemas for accounts and authentication.

Learn: Request models normalize and validate before anything touches the
database — emails are trimmed and lower-cased, names trimmed. The read
model is the only outward shape of an account: it has no field for the
password hash or the pending verification code, so neither can leak.
"""

import uuid
from datetime import datetime
from typing import Annotated, Optional

from pydantic import AliasChoices, BaseModel, BeforeValidator, Field

from notekeeper.config import settings

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _normalize_email(v):
    return v.strip().lower() if isinstance(v, str) else v


def _strip(v):
    return v.strip() if isinstance(v, str) else v


Email = Annotated[
    str,
    BeforeValidator(_normalize_email),
    Field(max_length=255, pattern=EMAIL_PATTERN),
]
DisplayName = Annotated[
    str,
    BeforeValidator(_strip),
    Field(min_length=settings.name_min_length, max_length=100),
]
NewPassword = Annotated[str, Field(min_length=settings.password_min_length)]


# ─── Requests ───────────────────────────────────────────


class RegisterRequest(BaseModel):
    email: Email
    password: NewPassword
    name: DisplayName


class VerifyRequest(BaseModel):
    email: Email
    otp: Annotated[
        str,
        BeforeValidator(_strip),
        Field(pattern=rf"^[0-9]{{{settings.challenge_code_length}}}$"),
    ]


class EmailOnly(BaseModel):
    email: Email


class LoginRequest(BaseModel):
    email: Email
    password: str = Field(min_length=1)


class ProfileUpdate(BaseModel):
    name: DisplayName


class PasswordChange(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: NewPassword


# ─── Responses ──────────────────────────────────────────


class AccountRead(BaseModel):
    id: uuid.UUID
    email: str
    name: str = Field(validation_alias=AliasChoices("display_name", "name"))
    avatar_url: Optional[str] = None
    verified: bool
    login_method: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PendingVerification(BaseModel):
    message: str
    email: str
    pending_verification: bool = True


class SessionResponse(BaseModel):
    message: str
    token: str
    token_type: str = "bearer"
    account: AccountRead


class AccountResponse(BaseModel):
    message: Optional[str] = None
    account: AccountRead


class Ack(BaseModel):
    message: str
