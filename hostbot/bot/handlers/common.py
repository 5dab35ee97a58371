from aiogram import F, Router
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message

from hostbot.bot import texts
from hostbot.bot.auth import is_admin
from hostbot.services.broadcast.service import BroadcastService

router = Router()


@router.message(Command("help"))
async def cmd_help(message: Message) -> None:
    text = texts.ADMIN_HELP if is_admin(message.from_user.id) else texts.USER_HELP
    await message.answer(text, parse_mode="HTML")


async def _cancel(state: FSMContext, broadcast: BroadcastService, tg_id: int) -> None:
    await state.clear()
    broadcast.disarm(tg_id)


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, state: FSMContext, broadcast: BroadcastService) -> None:
    await _cancel(state, broadcast, message.from_user.id)
    await message.answer(texts.CANCELLED)


@router.callback_query(F.data == "flow:cancel")
async def cb_cancel(cb: CallbackQuery, state: FSMContext, broadcast: BroadcastService) -> None:
    await _cancel(state, broadcast, cb.from_user.id)
    await cb.answer()
    await cb.message.answer(texts.CANCELLED)
