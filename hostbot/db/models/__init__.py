from .user import User
from .referral import Referral
from .app_setting import AppSetting
from .daily_stat import DailyStat, DailyStatUser

__all__ = [
    "User",
    "Referral",
    "AppSetting",
    "DailyStat",
    "DailyStatUser",
]
