"""
Authentication helpers and identity resolution.

Parses oauth2-proxy headers, normalizes emails and checks the operator
allow-list configured through ADMIN_EMAILS.
"""
import hmac
import os
from typing import Optional


def _normalize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    return email.strip().lower()


def _normalize_list_env(var_name: str) -> set:
    raw = os.getenv(var_name, "")
    values = set()
    for entry in raw.split(","):
        cleaned = entry.strip().strip('"').strip("'")
        if cleaned:
            values.add(cleaned.lower())
    return values


def _admin_emails() -> set:
    return _normalize_list_env("ADMIN_EMAILS")


def is_admin_email(email: Optional[str]) -> bool:
    if not email:
        return False
    return _normalize_email(email) in _admin_emails()


def resolve_email_from_headers(
    x_auth_request_email: Optional[str],
    x_forwarded_email: Optional[str],
) -> Optional[str]:
    return _normalize_email(x_auth_request_email or x_forwarded_email)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


def cron_secret_matches(token: Optional[str]) -> bool:
    secret = os.getenv("CRON_SECRET")
    if not secret or not token:
        return False
    return hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8"))
