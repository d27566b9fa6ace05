"""Room PIN and peer secret generation plus format checks."""
from __future__ import annotations

import hmac
import re
import secrets
from typing import Container

from ..core.errors import ValidationError

PIN_LENGTH = 6
SECRET_BYTES = 16
MESSAGE_ID_BYTES = 8

_PIN_RE = re.compile(r"[0-9]{6}")
_SECRET_RE = re.compile(r"[a-f0-9]{32}")


def generate_pin() -> str:
    """Return a zero-padded random room PIN."""

    return f"{secrets.randbelow(10**PIN_LENGTH):0{PIN_LENGTH}d}"


def generate_unique_pin(taken: Container[str], attempts: int) -> str | None:
    """Draw PINs until one is not in ``taken``; ``None`` once attempts run out."""

    for _ in range(attempts):
        pin = generate_pin()
        if pin not in taken:
            return pin
    return None


def generate_secret_id() -> str:
    return secrets.token_hex(SECRET_BYTES)


def generate_message_id() -> str:
    return secrets.token_hex(MESSAGE_ID_BYTES)


def require_pin(value: object) -> str:
    if not isinstance(value, str) or _PIN_RE.fullmatch(value) is None:
        raise ValidationError("PIN must be a 6-digit number.")
    return value


def require_secret_id(value: object) -> str:
    if not isinstance(value, str) or _SECRET_RE.fullmatch(value) is None:
        raise ValidationError("Invalid peer ID.")
    return value


def secrets_match(expected: str | None, candidate: str) -> bool:
    """Constant-time comparison of a stored secret against a presented one."""

    if expected is None:
        return False
    return hmac.compare_digest(expected.encode("ascii"), candidate.encode("ascii"))
