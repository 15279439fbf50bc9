"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Alembic auto-generates migrations by comparing
these models to the actual DB.

Key concepts:
- UUID primary keys, generic `Uuid` type so the same models run on
  Postgres (native uuid) and SQLite (tests)
- Timestamps always stored and returned as timezone-aware UTC
- The verification challenge is embedded in the account row, not a
  separate table: one active code per account, overwritten on resend
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    TypeDecorator,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


class UTCDateTime(TypeDecorator):
    """DateTime that always comes back timezone-aware (UTC).

    SQLite drops tzinfo on the way in; Postgres keeps it. Either way
    callers compare against datetime.now(timezone.utc) safely.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


# Login methods, fixed at account creation.
LOGIN_PASSWORD = "password"
LOGIN_EXTERNAL = "external"

# Note field limits.
NOTE_TITLE_MAX = 200
NOTE_CONTENT_MAX = 5000
NOTE_TAG_MAX = 30
DEFAULT_NOTE_COLOR = "#ffffff"


# ══════════════════════════════════════════════════════════════
# Credential shapes
# ══════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class PasswordAuth:
    password_hash: str


@dataclass(frozen=True)
class ExternalAuth:
    provider_id: str


@dataclass(frozen=True)
class LinkedAuth:
    """A password account that later signed in through the provider."""

    password_hash: str
    provider_id: str


AuthMethod = Union[PasswordAuth, ExternalAuth, LinkedAuth]


@dataclass(frozen=True)
class Challenge:
    code: str
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at <= (now or utcnow())


# ══════════════════════════════════════════════════════════════
# Accounts
# ══════════════════════════════════════════════════════════════


class Account(Base):
    """One identity per email.

    Learn: An account always has a password hash, an external provider
    id, or both — never neither. `auth` exposes that as a tagged value
    so mutation code branches on the credential shape instead of
    poking at nullable columns.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        Index("idx_accounts_external_id", "external_id", unique=True),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )  # absent for provider-only accounts
    external_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    avatar_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    login_method: Mapped[str] = mapped_column(String(20), nullable=False)

    challenge_code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    challenge_expires_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=utcnow
    )

    @property
    def auth(self) -> AuthMethod:
        if self.password_hash and self.external_id:
            return LinkedAuth(self.password_hash, self.external_id)
        if self.password_hash:
            return PasswordAuth(self.password_hash)
        if self.external_id:
            return ExternalAuth(self.external_id)
        raise ValueError(f"account {self.id} has no credential on file")

    @property
    def challenge(self) -> Optional[Challenge]:
        if not self.challenge_code or self.challenge_expires_at is None:
            return None
        return Challenge(self.challenge_code, self.challenge_expires_at)

    @challenge.setter
    def challenge(self, value: Optional[Challenge]) -> None:
        self.challenge_code = value.code if value else None
        self.challenge_expires_at = value.expires_at if value else None

    def touch(self) -> None:
        self.updated_at = utcnow()


# ══════════════════════════════════════════════════════════════
# Notes (owned by accounts; CRUD lives outside the identity layer)
# ══════════════════════════════════════════════════════════════


class Note(Base):
    """A short text note. Deleted in bulk when its owner is deleted."""

    __tablename__ = "notes"
    __table_args__ = (
        Index("idx_notes_owner_created", "owner_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(NOTE_TITLE_MAX), nullable=False)
    content: Mapped[str] = mapped_column(String(NOTE_CONTENT_MAX), nullable=False)
    color: Mapped[str] = mapped_column(String(7), nullable=False, default=DEFAULT_NOTE_COLOR)
    pinned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=utcnow
    )
