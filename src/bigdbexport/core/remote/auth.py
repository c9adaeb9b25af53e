"""Credential helpers for export connections."""

from __future__ import annotations

import hashlib
import hmac
import time
import uuid


def create_shared_secret(username: str, game_id: str) -> str:
    """Generate a fresh shared secret for a connection.

    Mixes in a random UUID, so two calls never return the same secret and
    the value cannot be rebuilt from anything stored on disk.
    """
    material = f"{username}{game_id}{uuid.uuid4()}".encode("utf-8")
    return hashlib.sha256(material).hexdigest().upper()


def calc_auth256(user_id: str, shared_secret: str, now: float | None = None) -> str:
    """Build the auth token for a connection using basic authentication.

    Format is ``<unixtime>:<hex HMAC-SHA256 of "<unixtime>:<user_id>">``
    keyed with the connection's shared secret.
    """
    unix_time = int(time.time() if now is None else now)
    message = f"{unix_time}:{user_id}".encode("utf-8")
    digest = hmac.new(shared_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
    return f"{unix_time}:{digest}"
