from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hostbot.services.quota.service import QuotaStats


class HostBotError(Exception):
    """Base class for errors that handlers turn into a user-visible reply."""


class AuthorizationError(HostBotError):
    pass


class NotFoundError(HostBotError):
    pass


class ValidationError(HostBotError):
    pass


class StorageError(HostBotError):
    """Object storage or database I/O failed; the user should retry later."""


class QuotaExceededError(HostBotError):
    def __init__(self, stats: "QuotaStats") -> None:
        super().__init__(f"quota exceeded: {stats.file_count}/{stats.total_slots}")
        self.stats = stats


class BroadcastBusyError(HostBotError):
    def __init__(self, armed_by: int | None, in_flight: bool) -> None:
        super().__init__("broadcast already pending")
        self.armed_by = armed_by
        self.in_flight = in_flight
