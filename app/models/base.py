from datetime import datetime
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base; every table has a bigint surrogate key."""

    id: Mapped[int] = mapped_column(sa.BigInteger(), primary_key=True)


class WithUUID:
    """Public identifier for rows referenced from outside the service (dashboard links, OAuth state)."""

    uuid: Mapped[UUID] = mapped_column(
        sa.UUID(as_uuid=True), index=True, unique=True, server_default=sa.text("gen_random_uuid()")
    )


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now(), nullable=False
    )
