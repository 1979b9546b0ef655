from datetime import datetime
from typing import TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin

if TYPE_CHECKING:
    from .account import Account


class RelayLog(Base, TimestampMixin):
    """One relay of a message batch to the automation endpoint.

    Rows with ``delivered_at`` unset are delivery gaps awaiting manual recovery.
    """

    __tablename__ = "relay_logs"

    account_id: Mapped[int] = mapped_column(sa.ForeignKey("accounts.id"), nullable=False, index=True)
    webhook_url: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    message_ids: Mapped[list[str]] = mapped_column(JSONB(), nullable=False, server_default=sa.text("'[]'"))
    start_cursor: Mapped[int | None] = mapped_column(sa.BigInteger, nullable=True)
    end_cursor: Mapped[int] = mapped_column(sa.BigInteger, nullable=False)
    status_code: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    response_body: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)

    account: Mapped["Account"] = relationship("Account")

    def __repr__(self) -> str:
        return (
            f"<RelayLog(account='{self.account_id}', cursor={self.start_cursor}->{self.end_cursor}, "
            f"status={self.status_code})>"
        )
