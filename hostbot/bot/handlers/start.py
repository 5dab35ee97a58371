import logging
from html import escape

from aiogram import Router
from aiogram.filters import CommandObject, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.types import Message

from hostbot.bot import texts
from hostbot.bot.auth import is_admin
from hostbot.bot.keyboards import kb_admin_menu, kb_user_menu
from hostbot.core.errors import StorageError
from hostbot.services.accounts.service import account_service
from hostbot.services.broadcast.service import BroadcastService
from hostbot.services.referrals.service import referral_service
from hostbot.services.stats.daily import daily_tracker

log = logging.getLogger(__name__)

router = Router()


@router.message(CommandStart())
async def cmd_start(message: Message, command: CommandObject, state: FSMContext, broadcast: BroadcastService) -> None:
    tg_id = message.from_user.id
    name = message.from_user.first_name or "Unknown"

    # /start drops whatever reply we were waiting for
    await state.clear()
    broadcast.disarm(tg_id)

    try:
        reg = await account_service.register(tg_id, name=name)
    except StorageError:
        log.exception("start_register_failed", extra={"tg_id": tg_id})
        await message.answer(texts.TRY_AGAIN)
        return

    # Referral payload format: /start <referrer tg_id>
    # Only a brand-new account can credit its referrer.
    if reg.created:
        referrer_id = referral_service.parse_payload(command.args, tg_id)
        if referrer_id:
            try:
                granted = await referral_service.apply_referral(referrer_id, tg_id)
            except StorageError:
                log.exception("start_referral_failed", extra={"tg_id": tg_id})
                granted = 0
            if granted:
                await referral_service.notify_referrer(
                    message.bot, referrer_id, new_name=escape(reg.name), reward=granted
                )

    try:
        await daily_tracker.track(tg_id)
    except StorageError:
        # stats are not worth failing the welcome over
        log.exception("start_daily_track_failed", extra={"tg_id": tg_id})

    if is_admin(tg_id):
        await message.answer(texts.WELCOME_ADMIN, reply_markup=kb_admin_menu())
    else:
        await message.answer(texts.WELCOME_USER, reply_markup=kb_user_menu())
