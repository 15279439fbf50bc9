"""Identity service — who is this caller, and which account are they?

Learn: Three ways in, one account namespace keyed by email:

1. Password: register → verify code → login
2. Verification code: verifying the emailed code *is* a login (token issued)
3. Google: the provider has already authenticated the user; we only
   decide whether the profile maps to an existing account, should be
   linked into a same-email account, or needs a fresh account.

Branch 3 returns a Resolution with an explicit outcome so callers and
tests can see which path fired instead of inferring it from side effects.
"""

import enum
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from notekeeper.auth.challenge import ChallengeManager, ChallengeResult
from notekeeper.auth.jwt import TokenIssuer
from notekeeper.auth.password import burn_password_check, verify_password
from notekeeper.config import settings
from notekeeper.db.models import LOGIN_EXTERNAL, LOGIN_PASSWORD, Account, ExternalAuth
from notekeeper.errors import (
    AlreadyVerified,
    ChallengeExpired,
    ChallengeMismatch,
    DuplicateEmail,
    EmailDeliveryFailed,
    InvalidCredentials,
    NeedsVerification,
    NoChallenge,
    NoSuchAccount,
    ProviderAuthFailed,
    ValidationFailed,
    WrongMethod,
)
from notekeeper.services.account_store import AccountStore, normalize_email
from notekeeper.services.mailer import Mailer

logger = structlog.get_logger()


class ResolutionOutcome(str, enum.Enum):
    EXISTING = "existing"
    LINKED = "linked"
    CREATED = "created"


@dataclass
class Resolution:
    account: Account
    outcome: ResolutionOutcome


@dataclass
class SignedIn:
    account: Account
    token: str


_CHALLENGE_FAILURES = {
    ChallengeResult.NO_CHALLENGE: NoChallenge,
    ChallengeResult.EXPIRED: ChallengeExpired,
    ChallengeResult.MISMATCH: ChallengeMismatch,
}


class IdentityService:
    """Registration, verification and sign-in."""

    def __init__(
        self,
        db: AsyncSession,
        mailer: Mailer,
        tokens: TokenIssuer,
        challenges: Optional[ChallengeManager] = None,
    ):
        self.db = db
        self.accounts = AccountStore(db)
        self.challenges = challenges or ChallengeManager(self.accounts)
        self.mailer = mailer
        self.tokens = tokens

    # ─── Password signup ────────────────────────────────

    async def register(self, email: str, password: str, name: str) -> Account:
        """Create an unverified password account and email it a code.

        If the email can't be delivered the account is deleted again,
        so retrying signup with the same address always works.
        """
        if len(password) < settings.password_min_length:
            raise ValidationFailed(
                f"Password must be at least {settings.password_min_length} characters long"
            )
        if len(name.strip()) < settings.name_min_length:
            raise ValidationFailed(
                f"Name must be at least {settings.name_min_length} characters long"
            )

        account = await self.accounts.create(email, name, password, LOGIN_PASSWORD)
        code = await self.challenges.issue(account)
        await self.db.commit()

        if not await self._deliver(account, code):
            await self.accounts.delete(account.id)
            await self.db.commit()
            logger.warning("auth.register_rolled_back", email=account.email)
            raise EmailDeliveryFailed()

        logger.info("auth.registered", account_id=str(account.id))
        return account

    async def verify(self, email: str, code: str) -> SignedIn:
        """Check an emailed code; on success the caller is logged in."""
        account = await self.accounts.find_by_email(email)
        if account is None:
            raise NoSuchAccount()
        if account.verified:
            raise AlreadyVerified()

        result = self.challenges.check(account, code)
        if result is not ChallengeResult.OK:
            logger.info(
                "auth.verify_rejected",
                account_id=str(account.id),
                reason=result.value,
            )
            raise _CHALLENGE_FAILURES[result]()

        await self.challenges.consume(account)
        await self.db.commit()
        logger.info("auth.verified", account_id=str(account.id))
        return SignedIn(account=account, token=self.tokens.mint(str(account.id)))

    async def resend_challenge(self, email: str) -> None:
        """Issue a new code, invalidating the previous one."""
        account = await self.accounts.find_by_email(email)
        if account is None:
            raise NoSuchAccount()
        if account.verified:
            raise AlreadyVerified()

        code = await self.challenges.issue(account)
        await self.db.commit()
        if not await self._deliver(account, code):
            raise EmailDeliveryFailed()
        logger.info("auth.challenge_resent", account_id=str(account.id))

    # ─── Password login ─────────────────────────────────

    async def login(self, email: str, password: str) -> SignedIn:
        account = await self.accounts.find_by_email(email)
        if account is None:
            burn_password_check(password)
            logger.info("auth.login_rejected", reason="unknown_email")
            raise InvalidCredentials()

        auth = account.auth
        if isinstance(auth, ExternalAuth):
            raise WrongMethod()

        if not verify_password(password, auth.password_hash):
            logger.info(
                "auth.login_rejected",
                account_id=str(account.id),
                reason="bad_password",
            )
            raise InvalidCredentials()

        if not account.verified:
            raise NeedsVerification(needs_verification=True, email=account.email)

        logger.info("auth.login", account_id=str(account.id))
        return SignedIn(account=account, token=self.tokens.mint(str(account.id)))

    # ─── External provider ──────────────────────────────

    async def resolve_external(
        self,
        provider_id: str,
        email: str,
        display_name: str,
        avatar_url: Optional[str] = None,
    ) -> Resolution:
        """Map a provider-asserted profile onto an account.

        Order matters: a known provider id is the strongest signal; an
        email match links the provider into that account (forcing it
        verified, since the provider vouches for the address); otherwise
        a new provider-only account is created.

        Linking is one-way and happens without asking the account
        owner — the provider's email assertion is trusted outright.
        """
        account = await self.accounts.find_by_external_id(provider_id)
        if account is not None:
            return Resolution(account, ResolutionOutcome.EXISTING)

        email = normalize_email(email)
        account = await self.accounts.find_by_email(email)
        if account is not None:
            if account.external_id and account.external_id != provider_id:
                raise ProviderAuthFailed(
                    "This email is already linked to a different Google account"
                )
            account.external_id = provider_id
            if avatar_url:
                account.avatar_url = avatar_url
            account.verified = True
            account.challenge = None
            try:
                await self.accounts.save(account)
            except IntegrityError:
                await self.db.rollback()
                logger.warning("auth.provider_link_conflict", provider_id=provider_id)
                raise ProviderAuthFailed("Sign-in raced another request, please retry")
            await self.db.commit()
            logger.info("auth.provider_linked", account_id=str(account.id))
            return Resolution(account, ResolutionOutcome.LINKED)

        name = display_name.strip()
        if len(name) < settings.name_min_length:
            name = email.split("@", 1)[0]
        try:
            account = await self.accounts.create(
                email,
                name,
                None,
                LOGIN_EXTERNAL,
                external_id=provider_id,
                avatar_url=avatar_url,
                verified=True,
            )
        except DuplicateEmail:
            # A concurrent first sign-in inserted the same email or provider id.
            logger.warning("auth.provider_create_conflict", provider_id=provider_id)
            raise ProviderAuthFailed("Sign-in raced another request, please retry")
        await self.db.commit()
        logger.info("auth.provider_account_created", account_id=str(account.id))
        return Resolution(account, ResolutionOutcome.CREATED)

    async def sign_in_external(
        self,
        provider_id: str,
        email: str,
        display_name: str,
        avatar_url: Optional[str] = None,
    ) -> tuple[Resolution, str]:
        resolution = await self.resolve_external(
            provider_id, email, display_name, avatar_url
        )
        return resolution, self.tokens.mint(str(resolution.account.id))

    # ─── Helpers ────────────────────────────────────────

    async def _deliver(self, account: Account, code: str) -> bool:
        try:
            return await self.mailer.send_verification_code(
                account.email, code, account.display_name
            )
        except Exception:
            logger.exception("mail.transport_error", account_id=str(account.id))
            return False
