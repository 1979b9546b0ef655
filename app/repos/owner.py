from uuid import UUID

from app.models.owner import Owner
from app.repos.base import BaseRepo


class OwnerRepo(BaseRepo[Owner]):
    """Owner repository."""

    def __init__(self) -> None:
        super().__init__(Owner)

    async def get_by_uuid(self, uuid: UUID) -> Owner | None:
        """Get owner by UUID."""
        result = await self.execute(self.base_stmt.where(Owner.uuid == uuid))
        return result.one_or_none()
