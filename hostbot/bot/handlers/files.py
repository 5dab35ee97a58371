from __future__ import annotations

import logging
from html import escape

from aiogram import F, Router
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message

from hostbot.bot import texts
from hostbot.bot.flows import FlowFSM, enter_flow, flow_expired
from hostbot.bot.keyboards import kb_cancel
from hostbot.bot.ui import answer_error, referral_link
from hostbot.core.config import settings
from hostbot.core.errors import (HostBotError, NotFoundError, QuotaExceededError, StorageError,
                                 ValidationError)
from hostbot.services.accounts.service import account_service
from hostbot.services.quota.service import quota_service
from hostbot.services.storage.service import HostingService, validate_file_name

log = logging.getLogger(__name__)

router = Router()

ASK_FILE = "Please send me an HTML or ZIP file to host."
ASK_DELETE = (
    "Please provide the name of the file you want to delete. "
    "Make sure it matches the exact name of the file."
)


# ==========================
# Upload
# ==========================

@router.message(Command("upload"))
async def cmd_upload(message: Message) -> None:
    await message.answer(ASK_FILE)


@router.callback_query(F.data == "user:upload")
async def cb_upload(cb: CallbackQuery) -> None:
    await cb.message.answer(ASK_FILE)
    await cb.answer()


@router.message(F.document)
async def on_document(message: Message, hosting: HostingService) -> None:
    tg_id = message.from_user.id
    doc = message.document

    try:
        validate_file_name(doc.file_name)
    except ValidationError:
        await message.answer("⚠️ Please upload an HTML or ZIP file.")
        return

    async def source() -> bytes:
        buf = await message.bot.download(doc)
        return buf.getvalue()

    try:
        # uploads from users who never pressed /start still need an account row
        await account_service.register(tg_id, name=message.from_user.first_name)
        await message.answer("⏳ Uploading your file, please wait...")
        res = await hosting.upload(
            tg_id,
            doc.file_name,
            doc.mime_type,
            source,
            size=doc.file_size,
            max_bytes=settings.max_upload_bytes,
        )
    except QuotaExceededError as e:
        link = await referral_link(message.bot, tg_id)
        await message.answer(texts.quota_exceeded(e.stats, link), parse_mode="HTML")
        return
    except StorageError as e:
        log.error("upload_storage_error err=%s", e, exc_info=e, extra={"tg_id": tg_id})
        await message.answer("❌ Error uploading your file. Try again later.")
        return
    except HostBotError as e:
        await answer_error(message, e)
        return

    lines = ["✅ File uploaded successfully!", f"🔗 Link: {escape(res.url)}"]
    if res.replaced:
        lines.append("♻️ Replaced your previous file with the same name.")
    if res.stats is not None:
        lines.append(texts.slots_line(res.stats))
    await message.answer("\n".join(lines), parse_mode="HTML")


# ==========================
# My files
# ==========================

async def _send_my_files(message: Message, hosting: HostingService, tg_id: int) -> None:
    try:
        files = await hosting.list_files(tg_id)
    except StorageError:
        log.exception("myfiles_failed", extra={"tg_id": tg_id})
        await message.answer("❌ Error fetching your files.")
        return

    if not files:
        await message.answer("📂 You have no uploaded files.")
        return

    lines = ["📄 <b>Your uploaded files:</b>"]
    lines += [f'🔗 <a href="{escape(f.url)}">{escape(f.file_name)}</a>' for f in files]
    for chunk in texts.chunk_lines(lines):
        await message.answer(chunk, parse_mode="HTML", disable_web_page_preview=True)


@router.message(Command("myfiles"))
async def cmd_myfiles(message: Message, hosting: HostingService) -> None:
    await _send_my_files(message, hosting, message.from_user.id)


@router.callback_query(F.data == "user:myfiles")
async def cb_myfiles(cb: CallbackQuery, hosting: HostingService) -> None:
    await cb.answer()
    await _send_my_files(cb.message, hosting, cb.from_user.id)


# ==========================
# Delete (one-shot filename capture)
# ==========================

@router.message(Command("delete"))
async def cmd_delete(message: Message, state: FSMContext) -> None:
    await enter_flow(state, FlowFSM.delete_filename)
    await message.answer(ASK_DELETE, reply_markup=kb_cancel())


@router.callback_query(F.data == "user:delete")
async def cb_delete(cb: CallbackQuery, state: FSMContext) -> None:
    await enter_flow(state, FlowFSM.delete_filename)
    await cb.message.answer(ASK_DELETE, reply_markup=kb_cancel())
    await cb.answer()


@router.message(FlowFSM.delete_filename, F.text, ~F.text.startswith("/"))
async def on_delete_filename(message: Message, state: FSMContext, hosting: HostingService) -> None:
    if await flow_expired(state):
        await message.answer(texts.FLOW_EXPIRED)
        return

    tg_id = message.from_user.id
    file_name = (message.text or "").strip()
    try:
        stats = await hosting.delete(tg_id, file_name)
    except NotFoundError:
        # stay armed so the user can retype the name
        await message.answer(f"❌ File {escape(file_name)} not found.", reply_markup=kb_cancel())
        return
    except ValidationError as e:
        await answer_error(message, e)
        return
    except StorageError:
        await state.clear()
        log.exception("delete_failed", extra={"tg_id": tg_id})
        await message.answer(f"❌ Error deleting file {escape(file_name)}.")
        return

    await state.clear()
    await message.answer(
        f"✅ File {escape(file_name)} deleted successfully.\n{texts.slots_line(stats)}",
        parse_mode="HTML",
    )


# ==========================
# Slots / referral / contact
# ==========================

async def _send_slots(message: Message, tg_id: int) -> None:
    try:
        stats = await quota_service.get_stats(tg_id)
    except StorageError:
        log.exception("slots_failed", extra={"tg_id": tg_id})
        await message.answer(texts.TRY_AGAIN)
        return
    link = await referral_link(message.bot, tg_id)
    await message.answer(texts.my_slots(stats, link), parse_mode="HTML", disable_web_page_preview=True)


@router.message(Command("referral"))
async def cmd_referral(message: Message) -> None:
    await _send_slots(message, message.from_user.id)


@router.callback_query(F.data == "user:slots")
async def cb_slots(cb: CallbackQuery) -> None:
    await cb.answer()
    await _send_slots(cb.message, cb.from_user.id)


@router.callback_query(F.data == "user:contact")
async def cb_contact(cb: CallbackQuery) -> None:
    username = settings.support_username
    await cb.message.answer(
        f"📌 Message me for any query: @{escape(username)}\n\n"
        f'🔗 <a href="https://t.me/{escape(username)}">🚀 Message me</a>',
        parse_mode="HTML",
    )
    await cb.answer()
