"""Failure kinds raised by the identity layer.

Learn: Services raise these; main.py renders them. Every error carries a
stable `kind` that clients can switch on, an HTTP status, and a human
message. Internal store errors never pass through here — they become a
generic 500 at the app boundary.
"""

from typing import Any, Optional


class NotekeeperError(Exception):
    """Base class for every expected, enumerable failure."""

    kind = "Error"
    status_code = 400
    message = "Request failed"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.message
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "kind": self.public_kind, **self.extra}

    @property
    def public_kind(self) -> str:
        return self.kind


# ─── Validation ─────────────────────────────────────────


class ValidationFailed(NotekeeperError):
    kind = "ValidationError"
    status_code = 422
    message = "Validation failed"


# ─── Identity conflict ──────────────────────────────────


class DuplicateEmail(NotekeeperError):
    kind = "DuplicateEmail"
    status_code = 409
    message = "An account already exists with this email"


# ─── Authentication ─────────────────────────────────────


class InvalidCredentials(NotekeeperError):
    kind = "InvalidCredentials"
    status_code = 401
    message = "Invalid email or password"


class WrongMethod(NotekeeperError):
    kind = "WrongMethod"
    message = "This account was created with Google. Please use Google Sign-In."


class NeedsVerification(NotekeeperError):
    kind = "NeedsVerification"
    status_code = 403
    message = "Please verify your email before logging in"


class NoSuchAccount(NotekeeperError):
    kind = "NoSuchAccount"
    message = "Account not found"


class AlreadyVerified(NotekeeperError):
    kind = "AlreadyVerified"
    message = "Account is already verified"


class NoChallenge(NotekeeperError):
    kind = "NoChallenge"
    message = "No verification code found. Please request a new one."


class ChallengeExpired(NotekeeperError):
    kind = "Expired"
    message = "Verification code has expired. Please request a new one."


class ChallengeMismatch(NotekeeperError):
    kind = "Mismatch"
    message = "Invalid verification code"


class WrongCurrentPassword(NotekeeperError):
    kind = "WrongCurrentPassword"
    message = "Current password is incorrect"


class NoPasswordOnFile(NotekeeperError):
    kind = "NoPasswordOnFile"
    message = "Cannot change password for Google sign-in accounts"


class ProviderAuthFailed(NotekeeperError):
    kind = "ProviderAuthFailed"
    status_code = 401
    message = "External sign-in failed"


# ─── Authorization (access guard) ───────────────────────


class NotAuthenticated(NotekeeperError):
    """Shared parent for guard failures that must look identical outside.

    The concrete subclass is kept for logs and tests; clients only ever
    see kind NotAuthenticated so a deleted account can't be told apart
    from a bad token.
    """

    kind = "NotAuthenticated"
    status_code = 401
    message = "Authentication required, please log in again"

    @property
    def public_kind(self) -> str:
        return NotAuthenticated.kind


class NoToken(NotAuthenticated):
    kind = "NoToken"


class InvalidToken(NotAuthenticated):
    kind = "InvalidToken"


class AccountGone(NotAuthenticated):
    kind = "AccountGone"


class NotVerified(NotekeeperError):
    kind = "NotVerified"
    status_code = 403
    message = "Email not verified"


# ─── Dependencies ───────────────────────────────────────


class EmailDeliveryFailed(NotekeeperError):
    kind = "EmailDeliveryFailed"
    status_code = 502
    message = "Failed to send verification email. Please try again."
