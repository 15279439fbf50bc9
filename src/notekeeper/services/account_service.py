"""Account mutations — profile edits, password change, deletion.

Learn: Every operation here receives an account the access guard already
loaded. Email is deliberately not editable: it is both the login key and
the verified identity, so changing it would need a new verification
round, which this service doesn't offer.
"""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from notekeeper.auth.password import hash_password, verify_password
from notekeeper.config import settings
from notekeeper.db.models import Account, ExternalAuth
from notekeeper.errors import (
    NoPasswordOnFile,
    NoSuchAccount,
    ValidationFailed,
    WrongCurrentPassword,
)
from notekeeper.services.account_store import AccountStore
from notekeeper.services.note_store import NoteStore

logger = structlog.get_logger()


class AccountService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.accounts = AccountStore(db)
        self.notes = NoteStore(db)

    async def update_profile(self, account: Account, *, name: str) -> Account:
        name = name.strip()
        if len(name) < settings.name_min_length:
            raise ValidationFailed(
                f"Name must be at least {settings.name_min_length} characters long"
            )
        account.display_name = name
        await self.accounts.save(account)
        await self.db.commit()
        return account

    async def change_password(
        self, account: Account, current: str, new: str
    ) -> None:
        if len(new) < settings.password_min_length:
            raise ValidationFailed(
                f"New password must be at least {settings.password_min_length} characters long"
            )

        auth = account.auth
        if isinstance(auth, ExternalAuth):
            raise NoPasswordOnFile()
        if not verify_password(current, auth.password_hash):
            raise WrongCurrentPassword()

        account.password_hash = hash_password(new)
        await self.accounts.save(account)
        await self.db.commit()
        logger.info("account.password_changed", account_id=str(account.id))

    async def delete_account(self, account: Account) -> int:
        """Delete the account and every note it owns, as one transaction.

        Notes go first, then the account row. If either step fails the
        whole unit is rolled back and the error propagates, so there is
        never a "success" with the account still present.
        Returns the number of notes removed.
        """
        account_id = account.id
        try:
            removed = await self.notes.delete_for_owner(account_id)
            if not await self.accounts.delete(account_id):
                raise NoSuchAccount()
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "account.deleted",
            account_id=str(account_id),
            notes_deleted=removed,
        )
        return removed
