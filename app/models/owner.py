import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, WithUUID


class Owner(Base, WithUUID, TimestampMixin):
    """Manager that owns monitored mailboxes. Rows are maintained by the dashboard."""

    __tablename__ = "owners"

    name: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    email: Mapped[str] = mapped_column(sa.String(255), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<Owner(uuid='{self.uuid}', email='{self.email}')>"
