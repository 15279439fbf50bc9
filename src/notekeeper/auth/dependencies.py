"""Access guard and FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers. Every protected
request runs the same four checks, in order:

1. a Bearer token is present            → else NoToken
2. the token verifies and is unexpired  → else InvalidToken
3. the account it names still exists    → else AccountGone
4. the account's email is verified      → else NotVerified

Step 4 is skipped only for account deletion, so somebody who never
finished signing up can still remove the registration.
"""

import uuid
from typing import Optional

import structlog
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from notekeeper.auth.jwt import TokenError, TokenIssuer, get_token_issuer
from notekeeper.db.engine import get_db
from notekeeper.db.models import Account
from notekeeper.errors import AccountGone, InvalidToken, NotVerified, NoToken
from notekeeper.services.account_store import AccountStore

logger = structlog.get_logger()


def extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class AccessGuard:
    """Turns an Authorization header into a loaded, usable account."""

    def __init__(self, store: AccountStore, tokens: TokenIssuer):
        self.store = store
        self.tokens = tokens

    async def authorize(
        self,
        authorization: Optional[str],
        *,
        allow_unverified: bool = False,
    ) -> Account:
        token = extract_bearer(authorization)
        if token is None:
            raise NoToken()

        try:
            subject = self.tokens.validate(token)
            account_id = uuid.UUID(subject)
        except (TokenError, ValueError) as e:
            logger.info("auth.token_rejected", error=str(e))
            raise InvalidToken()

        account = await self.store.find_by_id(account_id)
        if account is None:
            logger.info("auth.token_for_missing_account", account_id=subject)
            raise AccountGone()

        if not account.verified and not allow_unverified:
            raise NotVerified()
        return account


async def _authorize(
    request: Request,
    authorization: Optional[str],
    db: AsyncSession,
    tokens: TokenIssuer,
    allow_unverified: bool,
) -> Account:
    guard = AccessGuard(AccountStore(db), tokens)
    account = await guard.authorize(authorization, allow_unverified=allow_unverified)
    request.state.account = account
    structlog.contextvars.bind_contextvars(account_id=str(account.id))
    return account


async def get_current_account(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    tokens: TokenIssuer = Depends(get_token_issuer),
) -> Account:
    """Verified account making the request (401/403 otherwise)."""
    return await _authorize(request, authorization, db, tokens, False)


async def get_current_account_allow_unverified(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    tokens: TokenIssuer = Depends(get_token_issuer),
) -> Account:
    """Same as get_current_account but lets unverified accounts through.

    Only account deletion uses this.
    """
    return await _authorize(request, authorization, db, tokens, True)
