from __future__ import annotations

from fastapi import Request

from attendance_core.errors import ApiError
from attendance_core.settings import get_settings

_MAX_USER_ID_LENGTH = 64


def require_user(request: Request) -> str:
    """Acting user id from the header set by the upstream auth layer."""
    header_name = get_settings().user_id_header
    user_id = (request.headers.get(header_name) or "").strip()
    if not user_id:
        raise ApiError(status_code=401, code="UNAUTHENTICATED", message=f"Missing {header_name} header.")
    if len(user_id) > _MAX_USER_ID_LENGTH:
        raise ApiError(status_code=401, code="UNAUTHENTICATED", message=f"Invalid {header_name} header.")

    request.state.actor = "employee"
    request.state.actor_id = user_id
    return user_id
