"""Email verification challenges — one-time numeric codes.

Learn: A challenge is `{code, expires_at}` stored on the account row.
Issuing always overwrites, so a resend silently invalidates the previous
code. There is no attempt counter or lockout, and expired codes are not
purged in the background: expiry is only noticed when someone checks.
"""

import enum
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from notekeeper.config import settings
from notekeeper.db.models import Account, Challenge
from notekeeper.services.account_store import AccountStore


class ChallengeResult(str, enum.Enum):
    OK = "ok"
    NO_CHALLENGE = "no_challenge"
    EXPIRED = "expired"
    MISMATCH = "mismatch"


def generate_code(length: Optional[int] = None) -> str:
    """Uniformly random numeric code with no leading zero."""
    length = length or settings.challenge_code_length
    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(9 * low))


class ChallengeManager:
    def __init__(
        self,
        store: AccountStore,
        ttl: Optional[timedelta] = None,
        code_factory: Optional[Callable[[], str]] = None,
    ):
        self.store = store
        self.ttl = ttl or timedelta(minutes=settings.challenge_ttl_minutes)
        self._generate = code_factory or generate_code

    async def issue(self, account: Account) -> str:
        """Create a fresh code for `account`, replacing any earlier one."""
        code = self._generate()
        account.challenge = Challenge(
            code=code,
            expires_at=datetime.now(timezone.utc) + self.ttl,
        )
        await self.store.save(account)
        return code

    def check(
        self,
        account: Account,
        submitted: str,
        now: Optional[datetime] = None,
    ) -> ChallengeResult:
        challenge = account.challenge
        if challenge is None:
            return ChallengeResult.NO_CHALLENGE
        # Expiry first: a correct but stale code is still rejected.
        if challenge.is_expired(now):
            return ChallengeResult.EXPIRED
        # Bytes: compare_digest rejects non-ASCII str with TypeError.
        if not secrets.compare_digest(
            challenge.code.encode("utf-8"), submitted.strip().encode("utf-8")
        ):
            return ChallengeResult.MISMATCH
        return ChallengeResult.OK

    async def consume(self, account: Account) -> Account:
        """Mark the account verified and drop its challenge in one write."""
        account.verified = True
        account.challenge = None
        return await self.store.save(account)
