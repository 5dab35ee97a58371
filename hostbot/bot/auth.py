from hostbot.core.config import settings
from hostbot.core.errors import AuthorizationError


def is_admin(tg_id: int) -> bool:
    return int(tg_id) == int(settings.admin_tg_id)


def require_admin(tg_id: int) -> None:
    if not is_admin(tg_id):
        raise AuthorizationError(f"user {tg_id} is not an admin")
