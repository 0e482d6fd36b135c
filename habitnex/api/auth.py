"""Caller identity for API routes."""

import logging
from typing import Optional

from fastapi import Header, Request

from habitnex.config.settings import LOCAL_DEV_USER

logger = logging.getLogger(__name__)


async def get_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(default=None),
    authorization: Optional[str] = Header(default=None),
) -> Optional[str]:
    """Resolve the authenticated user, or None.

    The auth provider in front of the service forwards the verified identity
    in ``x-user-id``. Only an explicitly configured local environment falls
    back to a fixed development user; the default environment is production.
    """
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()

    settings = request.app.state.settings
    if settings.is_development:
        if authorization:
            logger.debug("Bearer token present without x-user-id; using local user")
        return LOCAL_DEV_USER
    return None
