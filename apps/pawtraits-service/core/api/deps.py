"""
API dependency helpers.

Resolves the caller behind the proxy headers and guards operator and cron
routes.
"""
import logging
from typing import Optional, Dict, Any

from fastapi import Header, HTTPException, status

from core.api.auth import (
    bearer_token,
    cron_secret_matches,
    is_admin_email,
    resolve_email_from_headers,
)
from core.utils.runtime import dev_mode_active

logger = logging.getLogger(__name__)

DEV_ADMIN_EMAIL = "dev@localhost"

# Contract:
# Returns {"email": str, "is_admin": bool}.
# Raises 401 if identity cannot be resolved.


def get_current_identity(
    x_auth_request_email: Optional[str] = Header(default=None),
    x_forwarded_email: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    if dev_mode_active():
        return {"email": DEV_ADMIN_EMAIL, "is_admin": True}
    email = resolve_email_from_headers(x_auth_request_email, x_forwarded_email)
    if not email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return {"email": email, "is_admin": is_admin_email(email)}


def require_admin(
    x_auth_request_email: Optional[str] = Header(default=None),
    x_forwarded_email: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    identity = get_current_identity(
        x_auth_request_email=x_auth_request_email,
        x_forwarded_email=x_forwarded_email,
    )
    if not identity["is_admin"]:
        logger.warning("admin_access_denied email=%s", identity["email"])
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return identity


def require_cron(authorization: Optional[str] = Header(default=None)) -> None:
    if not cron_secret_matches(bearer_token(authorization)):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
