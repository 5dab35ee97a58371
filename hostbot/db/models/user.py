from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from hostbot.db.base import Base


class User(Base):
    __tablename__ = "users"

    tg_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    name: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # ==========================
    # Quota
    # ==========================
    # Files currently stored under uploads/<tg_id>/ and counted against quota.
    file_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    base_limit: Mapped[int] = mapped_column(Integer, default=2, server_default="2", nullable=False)
    # Slots granted for each future referral.
    referral_reward: Mapped[int] = mapped_column(Integer, default=1, server_default="1", nullable=False)
    # Referral slots already banked (sum of referral_reward at each credit).
    bonus_slots: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def display_name(self) -> str:
        return self.name or "Unknown"

    @property
    def total_slots(self) -> int:
        return int(self.base_limit) + int(self.bonus_slots)
