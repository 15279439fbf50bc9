"""Credential store — durable account records keyed by email.

Learn: The store only reads and flushes. Services decide when a unit of
work is committed (or rolled back), so a multi-step operation such as
delete-with-cascade stays one transaction.
"""

import uuid
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from notekeeper.auth.password import hash_password
from notekeeper.db.models import LOGIN_EXTERNAL, LOGIN_PASSWORD, Account
from notekeeper.errors import DuplicateEmail


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AccountStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        email: str,
        name: str,
        password: Optional[str],
        method: str,
        *,
        external_id: Optional[str] = None,
        avatar_url: Optional[str] = None,
        verified: bool = False,
    ) -> Account:
        """Insert a new account. Raises DuplicateEmail if the email is taken."""
        if method not in (LOGIN_PASSWORD, LOGIN_EXTERNAL):
            raise ValueError(f"unknown login method: {method}")
        if password is None and external_id is None:
            raise ValueError("an account needs a password or an external identity")

        email = normalize_email(email)
        if await self.find_by_email(email) is not None:
            raise DuplicateEmail()

        account = Account(
            email=email,
            display_name=name.strip(),
            password_hash=hash_password(password) if password is not None else None,
            external_id=external_id,
            avatar_url=avatar_url,
            verified=verified,
            login_method=method,
        )
        self.db.add(account)
        try:
            await self.db.flush()
        except IntegrityError:
            # Lost a race with a concurrent signup for the same email.
            await self.db.rollback()
            raise DuplicateEmail()
        return account

    async def find_by_email(self, email: str) -> Optional[Account]:
        result = await self.db.execute(
            select(Account).where(Account.email == normalize_email(email))
        )
        return result.scalars().first()

    async def find_by_id(self, account_id: uuid.UUID) -> Optional[Account]:
        return await self.db.get(Account, account_id)

    async def find_by_external_id(self, external_id: str) -> Optional[Account]:
        result = await self.db.execute(
            select(Account).where(Account.external_id == external_id)
        )
        return result.scalars().first()

    async def save(self, account: Account) -> Account:
        account.touch()
        self.db.add(account)
        await self.db.flush()
        return account

    async def delete(self, account_id: uuid.UUID) -> bool:
        """Delete the account row. Returns False if nothing was deleted."""
        result = await self.db.execute(
            delete(Account).where(Account.id == account_id)
        )
        return result.rowcount > 0
