from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, WithUUID
from .decorators.types import EnumStringType

if TYPE_CHECKING:
    from .owner import Owner


class AccountStatus(Enum):
    onboarding = "onboarding"
    active = "active"
    inactive = "inactive"
    paused = "paused"


class AutomationMode(Enum):
    assistant = "assistant"
    agent = "agent"


class Account(Base, WithUUID, TimestampMixin):
    """A monitored Gmail mailbox."""

    __tablename__ = "accounts"

    owner_id: Mapped[int] = mapped_column(sa.ForeignKey("owners.id"), nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    email: Mapped[str] = mapped_column(sa.String(255), nullable=False, unique=True)
    status: Mapped[AccountStatus] = mapped_column(
        EnumStringType(AccountStatus), nullable=False, server_default=AccountStatus.onboarding.name
    )
    automation_mode: Mapped[AutomationMode] = mapped_column(
        EnumStringType(AutomationMode), nullable=False, server_default=AutomationMode.assistant.name
    )
    refresh_token: Mapped[str | None] = mapped_column(sa.Text, nullable=True, comment="Encrypted refresh token")
    sync_cursor: Mapped[int | None] = mapped_column(sa.BigInteger, nullable=True, comment="Gmail historyId")
    watch_expires_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    reauthorization_required: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False, server_default=sa.false()
    )

    owner: Mapped["Owner"] = relationship("Owner")

    __table_args__ = (
        sa.CheckConstraint(
            "status <> 'active' OR (refresh_token IS NOT NULL AND refresh_token <> '')",
            name="ck_account_active_has_refresh_token",
        ),
    )

    @property
    def is_eligible(self) -> bool:
        """Only active accounts are synced and relayed."""
        return self.status == AccountStatus.active

    def __repr__(self) -> str:
        return f"<Account(email='{self.email}', status='{self.status.name}', cursor={self.sync_cursor})>"
