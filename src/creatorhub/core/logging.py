"""Logging configuration and redaction helpers."""

from __future__ import annotations

import logging
from typing import Any

from creatorhub.core.settings import settings

_CONFIGURED = False

_SENSITIVE_EXACT_KEYS = {
    "authorization",
    "apikey",
    "api_key",
    "secret",
    "signature",
    "x-payment",
}
_SENSITIVE_SUFFIXES = ("_secret", "_signature", "_api_key", "_token")


def _resolve_level() -> int:
    if settings.log_level:
        return getattr(logging, settings.log_level.upper(), logging.INFO)
    if settings.debug:
        return logging.DEBUG
    return logging.INFO


def configure_logging() -> None:
    """Configure root logging once per process."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    logging.basicConfig(
        level=_resolve_level(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    _CONFIGURED = True


def _should_redact(key: str) -> bool:
    key_lower = key.lower()
    if key_lower in _SENSITIVE_EXACT_KEYS:
        return True
    return key_lower.endswith(_SENSITIVE_SUFFIXES)


def redact(value: Any, *, sensitive: bool = False) -> Any:
    """Return a copy of ``value`` with secret-bearing entries masked."""
    if isinstance(value, dict):
        return {
            key: redact(item, sensitive=(sensitive or _should_redact(str(key))))
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(redact(item, sensitive=sensitive) for item in value)
    if isinstance(value, str) and sensitive:
        return f"<redacted:{len(value)} chars>"
    return value
