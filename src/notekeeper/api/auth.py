"""Auth API — signup, verification, login, Google sign-in, account.

Learn: Routes for the whole account lifecycle:
- POST /auth/register (alias /auth/signup) → unverified account + emailed code
- POST /auth/verify-otp → verify code → session token
- POST /auth/resend-otp → new code, old one stops working
- POST /auth/login → email/password → session token
- GET /auth/google, /auth/google/callback → Google sign-in
- GET /auth/me, POST /auth/logout, PUT /auth/profile,
  PUT /auth/change-password, DELETE /auth/account → guarded

Handlers stay thin: services raise NotekeeperError subclasses and the
app-level exception handler renders them.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Cookie, Depends
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from notekeeper.auth.dependencies import (
    get_current_account,
    get_current_account_allow_unverified,
)
from notekeeper.auth.google import (
    STATE_COOKIE,
    STATE_TTL,
    GoogleOAuthClient,
    check_state,
    get_google_client,
    new_state,
)
from notekeeper.auth.jwt import TokenIssuer, get_token_issuer
from notekeeper.config import settings
from notekeeper.db.engine import get_db
from notekeeper.db.models import Account
from notekeeper.errors import ProviderAuthFailed
from notekeeper.schemas.account import (
    AccountRead,
    AccountResponse,
    Ack,
    EmailOnly,
    LoginRequest,
    PasswordChange,
    PendingVerification,
    ProfileUpdate,
    RegisterRequest,
    SessionResponse,
    VerifyRequest,
)
from notekeeper.services.account_service import AccountService
from notekeeper.services.identity_service import IdentityService
from notekeeper.services.mailer import Mailer, get_mailer

logger = structlog.get_logger()

router = APIRouter(prefix="/auth")


def get_identity_service(
    db: AsyncSession = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    tokens: TokenIssuer = Depends(get_token_issuer),
) -> IdentityService:
    return IdentityService(db, mailer, tokens)


def _session(message: str, account: Account, token: str) -> SessionResponse:
    return SessionResponse(
        message=message,
        token=token,
        account=AccountRead.model_validate(account),
    )


# ─── Signup + verification ──────────────────────────────


async def _register(body: RegisterRequest, svc: IdentityService) -> PendingVerification:
    account = await svc.register(body.email, body.password, body.name)
    return PendingVerification(
        message="Account created. Please check your email for the verification code.",
        email=account.email,
    )


@router.post("/register", response_model=PendingVerification, status_code=201)
async def register(
    body: RegisterRequest, svc: IdentityService = Depends(get_identity_service)
):
    """Create an unverified account and email a verification code."""
    return await _register(body, svc)


@router.post("/signup", response_model=PendingVerification, status_code=201)
async def signup(
    body: RegisterRequest, svc: IdentityService = Depends(get_identity_service)
):
    """Alias for /auth/register."""
    return await _register(body, svc)


@router.post("/verify-otp", response_model=SessionResponse)
async def verify_otp(
    body: VerifyRequest, svc: IdentityService = Depends(get_identity_service)
):
    """Verify the emailed code. Success logs the user in."""
    signed_in = await svc.verify(body.email, body.otp)
    return _session("Email verified successfully", signed_in.account, signed_in.token)


@router.post("/resend-otp", response_model=Ack)
async def resend_otp(
    body: EmailOnly, svc: IdentityService = Depends(get_identity_service)
):
    """Send a new verification code."""
    await svc.resend_challenge(body.email)
    return Ack(message="Verification code sent to your email")


# ─── Login ──────────────────────────────────────────────


@router.post("/login", response_model=SessionResponse)
async def login(
    body: LoginRequest, svc: IdentityService = Depends(get_identity_service)
):
    """Login with email and password → session token."""
    signed_in = await svc.login(body.email, body.password)
    return _session("Login successful", signed_in.account, signed_in.token)


# ─── Google sign-in ─────────────────────────────────────


def _login_error_redirect(reason: str) -> RedirectResponse:
    response = RedirectResponse(f"{settings.client_url}/login?error={reason}", status_code=302)
    response.delete_cookie(STATE_COOKIE)
    return response


@router.get("/google")
async def google_start(google: GoogleOAuthClient = Depends(get_google_client)):
    """Redirect the browser to Google's consent screen."""
    if not google.enabled:
        return _login_error_redirect("google_not_configured")

    state, nonce = new_state(settings.jwt_secret, settings.jwt_algorithm)
    response = RedirectResponse(google.authorize_url(state), status_code=302)
    response.set_cookie(
        STATE_COOKIE,
        nonce,
        max_age=int(STATE_TTL.total_seconds()),
        httponly=True,
        samesite="lax",
    )
    return response


@router.get("/google/callback")
async def google_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    state_cookie: Optional[str] = Cookie(None, alias=STATE_COOKIE),
    google: GoogleOAuthClient = Depends(get_google_client),
    svc: IdentityService = Depends(get_identity_service),
):
    """Finish Google sign-in and hand the session token to the client app."""
    try:
        if error or not code:
            raise ProviderAuthFailed(f"Google returned no code ({error or 'missing'})")
        check_state(state, state_cookie, settings.jwt_secret, settings.jwt_algorithm)
        profile = await google.fetch_profile(code)
        resolution, token = await svc.sign_in_external(
            profile.provider_id,
            profile.email,
            profile.display_name,
            profile.avatar_url,
        )
    except ProviderAuthFailed as e:
        logger.warning("auth.google_failed", error=e.message)
        return _login_error_redirect("google_auth_failed")

    logger.info(
        "auth.google_signed_in",
        account_id=str(resolution.account.id),
        outcome=resolution.outcome.value,
    )
    response = RedirectResponse(
        f"{settings.client_url}/auth-success?token={token}", status_code=302
    )
    response.delete_cookie(STATE_COOKIE)
    return response


# ─── Current account ────────────────────────────────────


@router.get("/me", response_model=AccountResponse)
async def get_me(account: Account = Depends(get_current_account)):
    """The authenticated account, without credentials."""
    return AccountResponse(account=AccountRead.model_validate(account))


@router.post("/logout", response_model=Ack)
async def logout(account: Account = Depends(get_current_account)):
    """Acknowledge logout. Tokens are stateless; the client discards it."""
    return Ack(message="Logged out successfully")


@router.put("/profile", response_model=AccountResponse)
async def update_profile(
    body: ProfileUpdate,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    """Change the display name. Email is not editable."""
    updated = await AccountService(db).update_profile(account, name=body.name)
    return AccountResponse(
        message="Profile updated successfully",
        account=AccountRead.model_validate(updated),
    )


@router.put("/change-password", response_model=Ack)
async def change_password(
    body: PasswordChange,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    await AccountService(db).change_password(
        account, body.current_password, body.new_password
    )
    return Ack(message="Password changed successfully")


@router.delete("/account", response_model=Ack)
async def delete_account(
    account: Account = Depends(get_current_account_allow_unverified),
    db: AsyncSession = Depends(get_db),
):
    """Delete the account and all of its notes. Works while unverified."""
    await AccountService(db).delete_account(account)
    return Ack(message="Account deleted successfully")
