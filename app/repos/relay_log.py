from sqlalchemy import ScalarResult
from sqlalchemy.orm import selectinload

from app.models import RelayLog
from app.repos.base import BaseRepo


class RelayLogRepo(BaseRepo[RelayLog]):
    """Repository for RelayLog model operations."""

    def __init__(self) -> None:
        super().__init__(RelayLog)

    async def persist(self, relay_log: RelayLog) -> RelayLog:
        """Store a relay log entry and commit it independently of the caller's work."""
        await self.add(relay_log, commit=True)
        return relay_log

    async def get_undelivered(self, limit: int = 100) -> ScalarResult[RelayLog]:
        """Get relay attempts that never reached the automation endpoint, oldest first."""
        query = (
            self.base_stmt.where(RelayLog.delivered_at.is_(None))
            .options(selectinload(RelayLog.account))
            .order_by(RelayLog.created_at)
            .limit(limit)
        )
        return await self.execute(query)
