from datetime import datetime
from uuid import UUID

from sqlalchemy import ScalarResult, or_, update
from sqlalchemy.dialects.postgresql import insert

from app.models.account import Account, AccountStatus, AutomationMode
from app.repos.base import BaseRepo


class AccountRepo(BaseRepo[Account]):
    """Repository for Account model operations."""

    def __init__(self) -> None:
        super().__init__(Account)

    async def get_by_uuid(self, uuid: UUID) -> Account | None:
        """Get account by uuid."""
        result = await self.execute(self.base_stmt.where(Account.uuid == uuid))
        return result.one_or_none()

    async def get_by_email(self, email: str) -> Account | None:
        """Get account by mailbox address."""
        result = await self.execute(self.base_stmt.where(Account.email == email.lower()))
        return result.one_or_none()

    async def get_all(self) -> ScalarResult[Account]:
        """Get all accounts ordered by email."""
        return await self.execute(self.base_stmt.order_by(Account.email))

    async def get_watch_renewal_candidates(self, expiring_before: datetime) -> ScalarResult[Account]:
        """Get active accounts whose watch is missing or expires before the given time."""
        query = self.base_stmt.where(
            Account.status == AccountStatus.active,
            or_(Account.watch_expires_at.is_(None), Account.watch_expires_at < expiring_before),
        ).order_by(Account.watch_expires_at.nulls_first())
        return await self.execute(query)

    async def upsert_authorized(self, owner_id: int, email: str, name: str | None, refresh_token: str) -> Account:
        """
        Create the account for a newly authorized mailbox or store the new refresh token on the existing one.

        The owner and automation mode of an existing account are left untouched.
        """
        email = email.lower()
        stmt = insert(Account).values(
            owner_id=owner_id,
            name=name,
            email=email,
            status=AccountStatus.active.name,
            automation_mode=AutomationMode.assistant.name,
            refresh_token=refresh_token,
            reauthorization_required=False,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["email"],
            set_={
                "refresh_token": stmt.excluded.refresh_token,
                "status": AccountStatus.active.name,
                "reauthorization_required": False,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self._db.session.execute(stmt)
        await self.flush()

        result = await self.execute(
            self.base_stmt.where(Account.email == email).execution_options(populate_existing=True)
        )
        account = result.one_or_none()
        if account is None:
            raise ValueError(f"Failed to create/update account for {email}")
        return account

    async def advance_cursor(self, account_id: int, expected: int | None, new: int) -> bool:
        """
        Compare-and-swap the sync cursor.

        The write only happens when the stored cursor still equals ``expected`` and ``new`` is strictly after it.
        Returns whether this call won.
        """
        if expected is not None and new <= expected:
            return False

        stmt = update(Account).where(Account.id == account_id, Account.status == AccountStatus.active)
        if expected is None:
            stmt = stmt.where(Account.sync_cursor.is_(None))
        else:
            stmt = stmt.where(Account.sync_cursor == expected)
        stmt = stmt.values(sync_cursor=new).execution_options(synchronize_session=False)

        result = await self._db.session.execute(stmt)
        return bool(result.rowcount == 1)

    async def raise_cursor(
        self, account_id: int, new: int, watch_expires_at: datetime | None = None, only_if_unset: bool = False
    ) -> bool:
        """
        Move the cursor forward to ``new`` unless the stored value is already at or past it.

        With ``only_if_unset`` the cursor is written only when the account has none yet; a watch baseline must not
        skip history that is still waiting to be synced. ``watch_expires_at`` is stored either way.
        """
        values: dict[str, object] = {"sync_cursor": new}
        if watch_expires_at is not None:
            values["watch_expires_at"] = watch_expires_at

        if only_if_unset:
            cursor_condition = Account.sync_cursor.is_(None)
        else:
            cursor_condition = or_(Account.sync_cursor.is_(None), Account.sync_cursor < new)
        stmt = (
            update(Account)
            .where(Account.id == account_id, cursor_condition)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.session.execute(stmt)
        if result.rowcount == 1:
            return True

        if watch_expires_at is not None:
            await self._db.session.execute(
                update(Account)
                .where(Account.id == account_id)
                .values(watch_expires_at=watch_expires_at)
                .execution_options(synchronize_session=False)
            )
        return False

    async def mark_reauthorization_required(self, account: Account) -> Account:
        """Take the account out of automatic sync until the mailbox is authorized again."""
        return await self.update(account, {"status": AccountStatus.inactive, "reauthorization_required": True})
