"""Helpers for handling credentials and recipient addresses in logs."""

from __future__ import annotations

from pydantic import SecretStr


def secret_value(value: SecretStr | str | None) -> str | None:
    """Return the plaintext secret stripped of whitespace."""
    if value is None:
        return None
    raw = value.get_secret_value() if isinstance(value, SecretStr) else value
    return raw.strip() or None


def redact_email(address: str) -> str:
    """Mask the local part of an address, e.g. ``j***@example.com``."""
    local, sep, domain = address.partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"
