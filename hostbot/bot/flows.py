from __future__ import annotations

import time

from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup

from hostbot.core.config import settings


class FlowFSM(StatesGroup):
    """Reply captures; a cleared state means the issuer is idle."""

    ban_target = State()
    unban_target = State()
    slot_edit = State()
    reward_edit = State()
    broadcast_payload = State()
    delete_filename = State()


async def enter_flow(state: FSMContext, target: State) -> None:
    # one pending capture per issuer: the new one replaces the old
    await state.clear()
    await state.set_state(target)
    await state.update_data(flow_started_at=time.time())


async def flow_expired(state: FSMContext) -> bool:
    """Clear and report True if the pending capture is older than the timeout."""
    data = await state.get_data()
    started = float(data.get("flow_started_at") or 0)
    if started and (time.time() - started) <= settings.flow_timeout_seconds:
        return False
    await state.clear()
    return True
