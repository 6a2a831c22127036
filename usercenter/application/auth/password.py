# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets


_ALGORITHM = "pbkdf2_sha256"


class PasswordHasher:
    """ 密码加盐哈希，格式: pbkdf2_sha256$<iterations>$<salt>$<hash> """

    def __init__(self, iterations: int = 260000, salt_bytes: int = 16) -> None:
        if iterations < 1:
            raise ValueError("iterations must be positive")
        self._iterations = int(iterations)
        self._salt_bytes = int(salt_bytes)

    def hash(self, password: str) -> str:
        salt = secrets.token_hex(self._salt_bytes)
        digest = self._derive(password, salt, self._iterations)
        return f"{_ALGORITHM}${self._iterations}${salt}${digest}"

    def verify(self, password: str, encoded: str) -> bool:
        try:
            algorithm, iterations, salt, expected = encoded.split("$", 3)
            rounds = int(iterations)
        except (AttributeError, ValueError):
            return False
        if algorithm != _ALGORITHM or rounds < 1:
            return False

        actual = self._derive(password, salt, rounds)
        return hmac.compare_digest(actual, expected)

    def needs_rehash(self, encoded: str) -> bool:
        parts = encoded.split("$")
        return len(parts) != 4 or parts[0] != _ALGORITHM or parts[1] != str(self._iterations)

    @staticmethod
    def _derive(password: str, salt: str, iterations: int) -> str:
        raw = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations)
        return base64.b64encode(raw).decode("ascii").strip()
