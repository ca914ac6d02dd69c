"""Request authentication.

Identity is resolved upstream (reverse proxy / auth gateway) and passed in the
``X-User-Id`` header. A missing or blank header is rejected before anything
else runs.
"""

from typing import Optional

from fastapi import Header

from .exceptions import Unauthorized

USER_ID_HEADER = "X-User-Id"


async def get_current_user(
    x_user_id: Optional[str] = Header(default=None, alias=USER_ID_HEADER),
) -> str:
    """FastAPI dependency returning the authenticated user id."""
    if x_user_id is None or not x_user_id.strip():
        raise Unauthorized("Missing user identity")
    return x_user_id.strip()
