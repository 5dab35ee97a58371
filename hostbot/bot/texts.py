from __future__ import annotations

from html import escape

from hostbot.services.quota.service import QuotaStats

BANNED = "❌ You are banned from using this bot."
NOT_AUTHORIZED = "❌ You are not authorized to perform this action."
TRY_AGAIN = "❌ Something went wrong. Please try again later."
FLOW_EXPIRED = "⌛ That request timed out. Start it again from the menu."
CANCELLED = "✖️ Cancelled."

WELCOME_USER = "Welcome to the HTML Hosting Bot! Use the menu below:"
WELCOME_ADMIN = "Welcome to the Admin Panel! Use the menu below:"

USER_HELP = (
    "⚙️ <b>User Commands:</b>\n"
    "/upload - Upload a file\n"
    "/myfiles - View your uploaded files\n"
    "/delete - Delete one of your files\n"
    "/referral - Your slots and referral link\n"
    "/cancel - Cancel the current action"
)

ADMIN_HELP = (
    "⚙️ <b>Admin Commands:</b>\n"
    "/listfiles - List all uploaded files\n"
    "/viewusers - View all users who have interacted with the bot\n"
    "/deleteuserfiles &lt;user_id&gt; - Delete a user's uploaded files\n"
    "/banuser &lt;user_id&gt; - Ban a user\n"
    "/unbanuser &lt;user_id&gt; - Unban a user\n"
    "/setlimit &lt;n&gt; - Set everyone's base upload slots\n"
    "/setreward &lt;n&gt; - Set slots granted per referral\n"
    "/status - View bot status\n"
    "/cancel - Cancel the current action"
)

# Telegram rejects messages longer than 4096 characters
MAX_MESSAGE_LEN = 4000


def slots_line(stats: QuotaStats) -> str:
    return f"📦 Slots used: <b>{stats.file_count}/{stats.total_slots}</b>"


def quota_exceeded(stats: QuotaStats, link: str | None) -> str:
    text = (
        "🚫 <b>Upload limit reached.</b>\n"
        f"{slots_line(stats)}\n\n"
        "Delete a file or invite friends: every friend who starts the bot with your link "
        f"gives you <b>+{stats.referral_reward}</b> slot(s)."
    )
    if link:
        text += f"\n🔗 {escape(link)}"
    return text


def my_slots(stats: QuotaStats, link: str | None) -> str:
    lines = [
        "🎁 <b>Your upload slots</b>",
        slots_line(stats),
        f"— base: <b>{stats.base_limit}</b>",
        f"— from referrals: <b>{stats.bonus_slots}</b> ({stats.referral_count} invited)",
        f"— per new referral: <b>+{stats.referral_reward}</b>",
    ]
    if link:
        lines += ["", f"🔗 Your referral link:\n{escape(link)}"]
    return "\n".join(lines)


def chunk_lines(lines: list[str], *, limit: int = MAX_MESSAGE_LEN) -> list[str]:
    """Join lines into messages that fit Telegram's size limit."""
    chunks: list[str] = []
    cur = ""
    for line in lines:
        if cur and len(cur) + len(line) + 1 > limit:
            chunks.append(cur)
            cur = ""
        cur = f"{cur}\n{line}" if cur else line[:limit]
    if cur:
        chunks.append(cur)
    return chunks
