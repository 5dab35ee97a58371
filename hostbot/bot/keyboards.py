from aiogram.types import InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder


def kb_user_menu() -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text="📤 Upload File", callback_data="user:upload")
    b.button(text="📂 My Files", callback_data="user:myfiles")
    b.button(text="❌ Delete File", callback_data="user:delete")
    b.button(text="🎁 My Slots & Referral Link", callback_data="user:slots")
    b.button(text="📞 Contact", callback_data="user:contact")
    b.adjust(1)
    return b.as_markup()


def kb_admin_menu() -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text="📂 View All Files", callback_data="admin:files")
    b.button(text="📊 Total Users", callback_data="admin:users")
    b.button(text="📈 Daily Stats", callback_data="admin:daily")
    b.button(text="📢 Broadcast Message", callback_data="admin:broadcast")
    b.button(text="🚫 Ban User", callback_data="admin:ban")
    b.button(text="🔓 Unban User", callback_data="admin:unban")
    b.button(text="🎚 Edit Default Slots", callback_data="admin:slots")
    b.button(text="🎁 Edit Referral Reward", callback_data="admin:reward")
    b.button(text="👤 User Menu", callback_data="admin:usermenu")
    b.adjust(1)
    return b.as_markup()


def kb_cancel() -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text="✖️ Cancel", callback_data="flow:cancel")
    b.adjust(1)
    return b.as_markup()
