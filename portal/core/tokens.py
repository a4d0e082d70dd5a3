"""Webhook & public-link tokens."""

import hmac
import secrets
import uuid
from typing import Any

MIN_TOKEN_LENGTH = 12


def new_webhook_token() -> str:
    """18 random bytes as base64url — 24 chars, URL-path safe."""
    return secrets.token_urlsafe(18)


def new_public_token() -> str:
    return uuid.uuid4().hex


def looks_like_token(value: Any) -> bool:
    return isinstance(value, str) and len(value.strip()) >= MIN_TOKEN_LENGTH


def tokens_match(expected: str | None, provided: str | None) -> bool:
    """Constant-time comparison; empty values never match."""
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))
