"""
URL utilities for building absolute storefront links in messages.

Primary source: APP_BASE_URL (e.g., https://pawtraits.pics)
Fallback: APP_HOST (adds scheme heuristically if missing).
"""
from __future__ import annotations

import os


def _add_scheme_if_missing(host: str) -> str:
    h = host.strip()
    if not h:
        return "http://localhost:3000"
    if h.startswith("http://") or h.startswith("https://"):
        return h
    lower = h.lower()
    if lower.startswith("localhost") or lower.startswith("127.0.0.1"):
        return f"http://{h}"
    return f"https://{h}"


def get_app_base_url() -> str:
    """Return normalized base URL for the storefront.

    Precedence: APP_BASE_URL, then APP_HOST, then http://localhost:3000.
    """
    base = os.getenv("APP_BASE_URL")
    if base and base.strip():
        return base.strip().rstrip("/")
    host = os.getenv("APP_HOST")
    if host and host.strip():
        return _add_scheme_if_missing(host).rstrip("/")
    return "http://localhost:3000"


def app_url(path: str) -> str:
    """Join a storefront path onto the base URL."""
    return f"{get_app_base_url()}/{path.lstrip('/')}"
