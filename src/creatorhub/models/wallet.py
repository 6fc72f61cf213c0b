"""SQLAlchemy model linking identity-provider users to wallets."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from creatorhub.db.session import Base


class LinkedWallet(Base):
    """A wallet address controlled by an authenticated user.

    Addresses are stored lowercased so lookups are case-insensitive.
    """

    __tablename__ = "linked_wallet"

    user_id: Mapped[str] = mapped_column(Text, primary_key=True)
    address: Mapped[str] = mapped_column(Text, primary_key=True, index=True)
    linked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    @validates("address")
    def _lowercase_address(self, _key: str, value: str) -> str:
        return value.lower()
