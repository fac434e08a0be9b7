"""Bearer token authentication for the scheduler and app routes."""

import hmac

from fastapi import Header, HTTPException

from .config import get_settings


def _check_bearer(authorization: str | None, secret: str) -> None:
    """Constant-time comparison against 'Bearer <secret>'. Unset secret rejects."""
    if not secret or not authorization:
        raise HTTPException(status_code=401, detail="Invalid or missing bearer token")
    expected = f"Bearer {secret}"
    if not hmac.compare_digest(authorization.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Invalid or missing bearer token")


async def verify_cron_secret(authorization: str | None = Header(default=None)) -> None:
    """Validate the bearer token sent by the scheduler."""
    _check_bearer(authorization, get_settings().CRON_SECRET)


async def verify_api_key(authorization: str | None = Header(default=None)) -> None:
    """Validate the bearer token sent by the presentation layer."""
    _check_bearer(authorization, get_settings().APP_API_KEY)
