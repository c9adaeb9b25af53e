"""
Unit tests for connection credentials.
"""

import hashlib
import hmac
import re

from bigdbexport.core.remote.auth import calc_auth256, create_shared_secret


class TestSharedSecret:
    def test_uppercase_sha256_hex(self):
        secret = create_shared_secret("dev", "game1")

        assert re.fullmatch(r"[0-9A-F]{64}", secret)

    def test_unique_per_call(self):
        secrets = {create_shared_secret("dev", "game1") for _ in range(20)}

        assert len(secrets) == 20


class TestCalcAuth256:
    def test_format(self):
        auth = calc_auth256("user", "SECRET", now=1700000000.75)

        unix_time, digest = auth.split(":")
        assert unix_time == "1700000000"
        assert re.fullmatch(r"[0-9a-f]{64}", digest)

    def test_hmac_of_time_and_user(self):
        auth = calc_auth256("user", "SECRET", now=1700000000)

        expected = hmac.new(b"SECRET", b"1700000000:user", hashlib.sha256).hexdigest()
        assert auth == f"1700000000:{expected}"

    def test_depends_on_secret(self):
        assert calc_auth256("user", "a", now=1) != calc_auth256("user", "b", now=1)

    def test_uses_current_time(self, monkeypatch):
        monkeypatch.setattr("bigdbexport.core.remote.auth.time.time", lambda: 42.0)

        assert calc_auth256("user", "s").startswith("42:")
