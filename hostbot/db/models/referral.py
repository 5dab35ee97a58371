from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from hostbot.db.base import Base


class Referral(Base):
    """One referred user in a referrer's set.

    Created when a brand-new user opens the bot through a referral link. A user
    can only ever be referred once.
    """

    __tablename__ = "referrals"
    __table_args__ = (UniqueConstraint("referred_tg_id", name="uq_referrals_referred"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    referrer_tg_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    referred_tg_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # slots granted to the referrer for this referral
    reward: Mapped[int] = mapped_column(Integer, default=1, server_default="1", nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
