from __future__ import annotations

import logging
import time
from html import escape

from aiogram import F, Router
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State
from aiogram.types import CallbackQuery, Message

from hostbot.bot import texts
from hostbot.bot.auth import is_admin, require_admin
from hostbot.bot.flows import FlowFSM, enter_flow, flow_expired
from hostbot.bot.keyboards import kb_admin_menu, kb_cancel, kb_user_menu
from hostbot.bot.ui import answer_error
from hostbot.core.errors import BroadcastBusyError, HostBotError, StorageError, ValidationError
from hostbot.core.time import fmt_uptime
from hostbot.db.session import session_scope
from hostbot.repo import count_users, list_user_ids, list_users, total_files
from hostbot.services.admin.config_mutator import BulkUpdateResult, config_mutator
from hostbot.services.bans import BanList, parse_tg_id
from hostbot.services.broadcast.service import BroadcastService, payload_from_message
from hostbot.services.stats.daily import daily_tracker
from hostbot.services.storage.service import HostingService

log = logging.getLogger(__name__)

router = Router()

ASK_BAN = "Please send the user ID to ban:"
ASK_UNBAN = "Please send the user ID to unban:"
ASK_SLOTS = "🎚 Send the new default number of upload slots for every user (positive whole number):"
ASK_REWARD = "🎁 Send how many slots a referrer earns per new referral (positive whole number):"
ASK_BROADCAST = "📢 Please send the message you want to broadcast (Text, Image, or Video)."


async def _deny(message: Message) -> None:
    await message.answer(texts.NOT_AUTHORIZED)


async def _start_capture(message: Message, state: FSMContext, broadcast: BroadcastService,
                         admin_id: int, target: State, prompt: str) -> None:
    broadcast.disarm(admin_id)
    await enter_flow(state, target)
    await message.answer(prompt, reply_markup=kb_cancel())


# ==========================
# Users / files listings
# ==========================

async def _send_users(message: Message) -> None:
    try:
        async with session_scope() as session:
            users = await list_users(session)
    except Exception:
        log.exception("admin_list_users_failed")
        await message.answer(texts.TRY_AGAIN)
        return

    if not users:
        await message.answer("⚠️ No users found.")
        return

    lines = [f"📊 <b>Total Users:</b> {len(users)}", ""]
    for u in users:
        lines.append(
            f"👤 <b>Name:</b> {escape(u.display_name)}\n"
            f"💬 <b>Chat ID:</b> <code>{u.tg_id}</code>\n"
            f"📦 {u.file_count}/{u.total_slots}\n"
        )
    for chunk in texts.chunk_lines(lines):
        await message.answer(chunk, parse_mode="HTML")


@router.message(Command("viewusers"))
async def cmd_viewusers(message: Message) -> None:
    if not is_admin(message.from_user.id):
        await _deny(message)
        return
    await _send_users(message)


@router.callback_query(F.data == "admin:users")
async def cb_users(cb: CallbackQuery) -> None:
    await cb.answer()
    if not is_admin(cb.from_user.id):
        await _deny(cb.message)
        return
    await _send_users(cb.message)


async def _send_all_files(message: Message, hosting: HostingService) -> None:
    try:
        objects = await hosting.list_all()
    except StorageError:
        log.exception("admin_list_files_failed")
        await message.answer(texts.TRY_AGAIN)
        return

    if not objects:
        await message.answer("📂 No uploaded files found.")
        return

    lines = [f"📜 <b>All uploaded files ({len(objects)}):</b>"]
    for o in objects:
        url = hosting.file_url(o)
        lines.append(f'🔗 <a href="{escape(url)}">{escape(hosting.display_name(o))}</a>')
    for chunk in texts.chunk_lines(lines):
        await message.answer(chunk, parse_mode="HTML", disable_web_page_preview=True)


@router.message(Command("listfiles"))
async def cmd_listfiles(message: Message, hosting: HostingService) -> None:
    if not is_admin(message.from_user.id):
        await _deny(message)
        return
    await _send_all_files(message, hosting)


@router.callback_query(F.data == "admin:files")
async def cb_files(cb: CallbackQuery, hosting: HostingService) -> None:
    await cb.answer()
    if not is_admin(cb.from_user.id):
        await _deny(cb.message)
        return
    await _send_all_files(cb.message, hosting)


@router.message(Command("deleteuserfiles"))
async def cmd_deleteuserfiles(message: Message, command: CommandObject, hosting: HostingService) -> None:
    try:
        require_admin(message.from_user.id)
        target = parse_tg_id(command.args)
        deleted, failed = await hosting.delete_all(target)
    except HostBotError as e:
        await answer_error(message, e)
        return
    text = f"🗑 Deleted {deleted} file(s) of user <code>{target}</code>."
    if failed:
        text += f"\n⚠️ {failed} file(s) could not be deleted."
    await message.answer(text, parse_mode="HTML")


# ==========================
# Status / daily stats
# ==========================

@router.message(Command("status"))
async def cmd_status(message: Message, ban_list: BanList, broadcast: BroadcastService, started_at: float) -> None:
    if not is_admin(message.from_user.id):
        await _deny(message)
        return
    try:
        async with session_scope() as session:
            users = await count_users(session)
            files = await total_files(session)
        today = await daily_tracker.get_count()
    except Exception:
        log.exception("admin_status_failed")
        await message.answer(texts.TRY_AGAIN)
        return

    pending = "sending" if broadcast.in_flight else ("armed" if broadcast.armed_by else "idle")
    await message.answer(
        "🤖 <b>Bot status</b>\n\n"
        f"👥 Users: <b>{users}</b>\n"
        f"📅 Active today: <b>{today}</b>\n"
        f"📦 Files hosted: <b>{files}</b>\n"
        f"🚫 Banned (this session): <b>{len(ban_list)}</b>\n"
        f"📢 Broadcast: <b>{pending}</b>\n"
        f"⏱ Uptime: <b>{fmt_uptime(time.monotonic() - started_at)}</b>",
        parse_mode="HTML",
    )


@router.callback_query(F.data == "admin:daily")
async def cb_daily(cb: CallbackQuery) -> None:
    await cb.answer()
    if not is_admin(cb.from_user.id):
        await _deny(cb.message)
        return
    try:
        rows = await daily_tracker.recent(7)
    except Exception:
        log.exception("admin_daily_failed")
        await cb.message.answer(texts.TRY_AGAIN)
        return
    lines = ["📈 <b>Daily active users (UTC)</b>", ""]
    lines += [f"{day.isoformat()}: <b>{count}</b>" for day, count in rows]
    await cb.message.answer("\n".join(lines), parse_mode="HTML")


@router.callback_query(F.data == "admin:usermenu")
async def cb_usermenu(cb: CallbackQuery) -> None:
    await cb.answer()
    await cb.message.answer(texts.WELCOME_USER, reply_markup=kb_user_menu())


# ==========================
# Ban / unban
# ==========================

async def _do_ban(message: Message, ban_list: BanList, raw: str | None, *, ban: bool) -> bool:
    """Returns False on bad input so the capture can stay armed."""
    try:
        changed = ban_list.ban(raw) if ban else ban_list.unban(raw)
    except ValidationError as e:
        await answer_error(message, e)
        return False
    target = parse_tg_id(raw)
    if ban:
        text = f"✅ User {target} has been banned." if changed else f"ℹ️ User {target} is already banned."
    else:
        text = f"✅ User {target} has been unbanned." if changed else f"ℹ️ User {target} was not banned."
    await message.answer(text)
    return True


@router.message(Command("banuser"))
async def cmd_banuser(message: Message, command: CommandObject, state: FSMContext,
                      ban_list: BanList, broadcast: BroadcastService) -> None:
    if not is_admin(message.from_user.id):
        await _deny(message)
        return
    if command.args:
        await _do_ban(message, ban_list, command.args, ban=True)
        return
    await _start_capture(message, state, broadcast, message.from_user.id, FlowFSM.ban_target, ASK_BAN)


@router.message(Command("unbanuser"))
async def cmd_unbanuser(message: Message, command: CommandObject, state: FSMContext,
                        ban_list: BanList, broadcast: BroadcastService) -> None:
    if not is_admin(message.from_user.id):
        await _deny(message)
        return
    if command.args:
        await _do_ban(message, ban_list, command.args, ban=False)
        return
    await _start_capture(message, state, broadcast, message.from_user.id, FlowFSM.unban_target, ASK_UNBAN)


@router.callback_query(F.data.in_({"admin:ban", "admin:unban"}))
async def cb_ban(cb: CallbackQuery, state: FSMContext, broadcast: BroadcastService) -> None:
    await cb.answer()
    if not is_admin(cb.from_user.id):
        await _deny(cb.message)
        return
    if cb.data == "admin:ban":
        await _start_capture(cb.message, state, broadcast, cb.from_user.id, FlowFSM.ban_target, ASK_BAN)
    else:
        await _start_capture(cb.message, state, broadcast, cb.from_user.id, FlowFSM.unban_target, ASK_UNBAN)


@router.message(FlowFSM.ban_target, F.text, ~F.text.startswith("/"))
async def on_ban_target(message: Message, state: FSMContext, ban_list: BanList) -> None:
    if await flow_expired(state):
        await message.answer(texts.FLOW_EXPIRED)
        return
    if await _do_ban(message, ban_list, message.text, ban=True):
        await state.clear()


@router.message(FlowFSM.unban_target, F.text, ~F.text.startswith("/"))
async def on_unban_target(message: Message, state: FSMContext, ban_list: BanList) -> None:
    if await flow_expired(state):
        await message.answer(texts.FLOW_EXPIRED)
        return
    if await _do_ban(message, ban_list, message.text, ban=False):
        await state.clear()


# ==========================
# Quota parameters
# ==========================

def _bulk_text(what: str, result: BulkUpdateResult) -> str:
    lines = [f"✅ {what} set to <b>{result.value}</b> for {result.updated} user(s)."]
    if result.over_quota:
        lines.append(f"ℹ️ {result.over_quota} user(s) now hold more files than slots and cannot upload until they delete some.")
    if result.failed:
        shown = ", ".join(str(x) for x in result.failed[:20])
        lines.append(f"⚠️ Failed for {len(result.failed)} user(s): {shown}")
    return "\n".join(lines)


async def _apply_setting(message: Message, raw: str | None, *, reward: bool) -> bool:
    try:
        if reward:
            result = await config_mutator.set_referral_reward(raw)
        else:
            result = await config_mutator.set_default_base_limit(raw)
    except ValidationError:
        await message.answer("❌ Please send a positive whole number, e.g. <code>5</code>.", parse_mode="HTML")
        return False
    except Exception:
        log.exception("admin_bulk_update_aborted reward=%s", reward)
        await message.answer(texts.TRY_AGAIN)
        return True
    what = "Referral reward" if reward else "Default upload slots"
    await message.answer(_bulk_text(what, result), parse_mode="HTML")
    return True


@router.message(Command("setlimit"))
async def cmd_setlimit(message: Message, command: CommandObject, state: FSMContext,
                       broadcast: BroadcastService) -> None:
    if not is_admin(message.from_user.id):
        await _deny(message)
        return
    if command.args:
        await _apply_setting(message, command.args, reward=False)
        return
    await _start_capture(message, state, broadcast, message.from_user.id, FlowFSM.slot_edit, ASK_SLOTS)


@router.message(Command("setreward"))
async def cmd_setreward(message: Message, command: CommandObject, state: FSMContext,
                        broadcast: BroadcastService) -> None:
    if not is_admin(message.from_user.id):
        await _deny(message)
        return
    if command.args:
        await _apply_setting(message, command.args, reward=True)
        return
    await _start_capture(message, state, broadcast, message.from_user.id, FlowFSM.reward_edit, ASK_REWARD)


@router.callback_query(F.data.in_({"admin:slots", "admin:reward"}))
async def cb_quota_params(cb: CallbackQuery, state: FSMContext, broadcast: BroadcastService) -> None:
    await cb.answer()
    if not is_admin(cb.from_user.id):
        await _deny(cb.message)
        return
    if cb.data == "admin:slots":
        await _start_capture(cb.message, state, broadcast, cb.from_user.id, FlowFSM.slot_edit, ASK_SLOTS)
    else:
        await _start_capture(cb.message, state, broadcast, cb.from_user.id, FlowFSM.reward_edit, ASK_REWARD)


@router.message(FlowFSM.slot_edit, F.text, ~F.text.startswith("/"))
async def on_slot_edit(message: Message, state: FSMContext) -> None:
    if await flow_expired(state):
        await message.answer(texts.FLOW_EXPIRED)
        return
    if await _apply_setting(message, message.text, reward=False):
        await state.clear()


@router.message(FlowFSM.reward_edit, F.text, ~F.text.startswith("/"))
async def on_reward_edit(message: Message, state: FSMContext) -> None:
    if await flow_expired(state):
        await message.answer(texts.FLOW_EXPIRED)
        return
    if await _apply_setting(message, message.text, reward=True):
        await state.clear()


# ==========================
# Broadcast
# ==========================

@router.callback_query(F.data == "admin:broadcast")
async def cb_broadcast(cb: CallbackQuery, state: FSMContext, broadcast: BroadcastService) -> None:
    await cb.answer()
    admin_id = cb.from_user.id
    if not is_admin(admin_id):
        await _deny(cb.message)
        return
    try:
        broadcast.arm(admin_id)
    except BroadcastBusyError as e:
        await answer_error(cb.message, e)
        return
    await enter_flow(state, FlowFSM.broadcast_payload)
    await cb.message.answer(ASK_BROADCAST, reply_markup=kb_cancel())


@router.message(FlowFSM.broadcast_payload, ~F.text.startswith("/"))
async def on_broadcast_payload(message: Message, state: FSMContext, broadcast: BroadcastService) -> None:
    admin_id = message.from_user.id
    if await flow_expired(state) or not broadcast.is_armed_by(admin_id):
        broadcast.disarm(admin_id)
        await state.clear()
        await message.answer(texts.FLOW_EXPIRED)
        return

    try:
        payload = payload_from_message(message)
    except ValidationError as e:
        # keep waiting for a supported message
        await answer_error(message, e)
        return

    broadcast.consume(admin_id)
    await state.clear()
    try:
        await _send_broadcast(message, broadcast, payload)
    finally:
        broadcast.release()


async def _send_broadcast(message: Message, broadcast: BroadcastService, payload) -> None:
    try:
        async with session_scope() as session:
            recipients = await list_user_ids(session)
    except Exception:
        log.exception("broadcast_recipients_failed")
        await message.answer(texts.TRY_AGAIN)
        return

    if not recipients:
        await message.answer("⚠️ No users found.")
        return

    await message.answer(f"⏳ Sending to {len(recipients)} user(s)...")
    result = await broadcast.send_to_all(message.bot, payload, recipients)
    text = f"✅ Broadcast sent to {result.sent} users."
    if result.failed:
        text += f"\n⚠️ {len(result.failed)} delivery(ies) failed."
    await message.answer(text, reply_markup=kb_admin_menu())
