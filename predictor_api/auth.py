from __future__ import annotations

import hashlib
import hmac
import secrets
from typing import Optional

from predictor_api.errors import AuthorizationError
from predictor_api.models import RoomSettings


def _digest(salt: str, pin: str) -> str:
    combined = f"{salt}:{pin}"
    return hashlib.sha256(combined.encode()).hexdigest()


def hash_pin(pin: str, salt: Optional[str] = None) -> str:
    """Stored form: "<salt>$<sha256(salt:pin)>". The plaintext PIN is never stored."""
    salt = salt or secrets.token_hex(8)
    return f"{salt}${_digest(salt, str(pin))}"


def verify_pin(pin: Optional[str], stored: Optional[str]) -> bool:
    if not pin or not stored:
        return False
    pin = str(pin).strip()

    if "$" in stored:
        salt, _, expected = stored.partition("$")
        return hmac.compare_digest(_digest(salt, pin), expected)

    # Rooms created before salting stored a bare sha256 of the PIN
    legacy = hashlib.sha256(pin.encode()).hexdigest()
    return hmac.compare_digest(legacy, stored)


def ensure_admin(settings: RoomSettings, pin: Optional[str]) -> None:
    if not settings.use_pin:
        return
    if not verify_pin(pin, settings.admin_pin_hash):
        raise AuthorizationError("Invalid admin PIN.", "InvalidPin")
