from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import BigInteger, Date, DateTime, Integer, func
from sqlalchemy.orm import Mapped, mapped_column

from hostbot.db.base import Base


class DailyStat(Base):
    """Distinct users seen on one UTC day.

    ``count`` is only ever changed in the transaction that inserts the matching
    DailyStatUser row, so it always equals the number of rows for ``day``.
    """

    __tablename__ = "daily_stats"

    day: Mapped[date] = mapped_column(Date, primary_key=True)
    count: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class DailyStatUser(Base):
    __tablename__ = "daily_stat_users"

    day: Mapped[date] = mapped_column(Date, primary_key=True)
    tg_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
