"""
Signed academy-selection cookie.

The cookie value is "{academy_id}.{signature}" where signature is the
URL-safe base64 HMAC-SHA256 of the academy id under the configured secret.
A missing, unsigned or tampered value reads as "no selection".
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from typing import Any

from ..config import CookieConfig

logger = logging.getLogger(__name__)


def _signature(academy_id: str, secret: str) -> str:
    digest = hmac.new(secret.encode(), academy_id.encode(), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode()


def sign_academy_id(academy_id: str, secret: str) -> str:
    return f"{academy_id}.{_signature(academy_id, secret)}"


def unsign_academy_id(value: str | None, secret: str) -> str | None:
    """Return the academy id carried by a cookie value, or None if invalid."""
    if not value or "." not in value:
        return None
    academy_id, _, signature = value.rpartition(".")
    if not academy_id or not hmac.compare_digest(signature, _signature(academy_id, secret)):
        logger.warning("Ignoring academy cookie with an invalid signature")
        return None
    return academy_id


def cookie_kwargs(config: CookieConfig, academy_id: str) -> dict[str, Any]:
    """Arguments for Response.set_cookie() persisting the selection."""
    return {
        "key": config.name,
        "value": sign_academy_id(academy_id, config.secret),
        "max_age": config.max_age,
        "path": "/",
        "httponly": True,
        "samesite": "lax",
        "secure": config.secure,
    }
