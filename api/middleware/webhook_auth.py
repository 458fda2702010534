"""Middleware for webhook token validation."""

import hmac
import logging

from fastapi import Depends, Request

from agenda.errors import AuthError
from api.dependencies import get_app_settings
from shared.config import Settings

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Webhook-Token"


async def verify_webhook_token(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> None:
    """
    Validate the shared-secret header sent by the bot.

    Raises:
        AuthError: header missing or different from WEBHOOK_SECRET
            (rendered as 403 by the app exception handler)
    """
    token = request.headers.get(TOKEN_HEADER, "")

    # Validate token using timing-safe comparison
    if not token or not hmac.compare_digest(
        token.encode("utf-8"), settings.WEBHOOK_SECRET.encode("utf-8")
    ):
        client_host = request.client.host if request.client else "unknown"
        logger.warning(
            f"Invalid webhook token attempted from IP: {client_host}",
            extra={"request_path": request.url.path},
        )
        raise AuthError()
