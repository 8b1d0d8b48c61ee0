# feedpress/auth.py
"""Shared authentication dependencies."""

import os
import secrets

from fastapi import Header, HTTPException


def require_admin_key(
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> None:
    """Validate admin API key. Fails closed if ADMIN_API_KEY is not set."""
    expected_key = os.getenv("ADMIN_API_KEY")

    if not expected_key:
        raise HTTPException(
            status_code=500,
            detail="Server misconfiguration: admin authentication not configured",
        )

    if not x_api_key or not secrets.compare_digest(x_api_key, expected_key):
        raise HTTPException(
            status_code=401,
            detail="Invalid or missing API key",
        )


def require_cron_secret(
    authorization: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> None:
    """
    Validate the cron caller.

    Accepts `Authorization: Bearer <CRON_SECRET>`, or the admin key so operators
    can trigger cron jobs by hand. Fails closed if CRON_SECRET is not set.
    """
    expected_secret = os.getenv("CRON_SECRET")
    admin_key = os.getenv("ADMIN_API_KEY")

    if admin_key and x_api_key and secrets.compare_digest(x_api_key, admin_key):
        return

    if not expected_secret:
        raise HTTPException(
            status_code=500,
            detail="Server misconfiguration: cron authentication not configured",
        )

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token or not secrets.compare_digest(token, expected_secret):
        raise HTTPException(
            status_code=401,
            detail="Invalid or missing cron secret",
        )
