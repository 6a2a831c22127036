# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

import time

import jwt
import pytest

from usercenter.application.auth.password import PasswordHasher
from usercenter.application.auth.token_service import TokenService
from usercenter.common.codes import ErrorCode
from usercenter.common.errors import UnauthorizedError
from usercenter.infra.config import Settings


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(iterations=1000)


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(Settings(JWT_SECRET_KEY="unit-secret", ACCESS_TOKEN_EXPIRE_MINUTES=5))


# ---------------------------------------------------------------------------
# password
# ---------------------------------------------------------------------------


def test_hash_format_and_verify(hasher):
    encoded = hasher.hash("secret123")

    algorithm, iterations, salt, digest = encoded.split("$")
    assert algorithm == "pbkdf2_sha256"
    assert iterations == "1000"
    assert salt and digest
    assert "secret123" not in encoded
    assert hasher.verify("secret123", encoded)
    assert not hasher.verify("secret124", encoded)


def test_hash_is_salted(hasher):
    assert hasher.hash("same") != hasher.hash("same")


def test_verify_uses_stored_iterations(hasher):
    encoded = PasswordHasher(iterations=2000).hash("pw")
    assert hasher.verify("pw", encoded)
    assert hasher.needs_rehash(encoded)
    assert not hasher.needs_rehash(hasher.hash("pw"))


@pytest.mark.parametrize("encoded", ["", "plaintext", "md5$1$a$b", "pbkdf2_sha256$x$a$b", "pbkdf2_sha256$0$a$b"])
def test_verify_rejects_malformed(hasher, encoded):
    assert not hasher.verify("pw", encoded)


def test_iterations_must_be_positive():
    with pytest.raises(ValueError):
        PasswordHasher(iterations=0)


# ---------------------------------------------------------------------------
# token
# ---------------------------------------------------------------------------


def test_issue_and_decode(tokens):
    issued = tokens.issue(user_id=7, username="alice", role="admin")

    assert issued.expires_in == 300
    claims = tokens.decode(issued.token)
    assert claims.user_id == 7
    assert claims.username == "alice"
    assert claims.role == "admin"

    payload = jwt.decode(issued.token, "unit-secret", algorithms=["HS256"])
    assert payload["sub"] == "7"
    assert payload["type"] == "access"
    assert payload["exp"] - payload["iat"] == 300


def _decode_error(tokens, token) -> UnauthorizedError:
    with pytest.raises(UnauthorizedError) as exc_info:
        tokens.decode(token)
    return exc_info.value


def test_expired_token(tokens):
    now = int(time.time())
    token = jwt.encode({"sub": "1", "type": "access", "iat": now - 100, "exp": now - 10}, "unit-secret", algorithm="HS256")

    assert _decode_error(tokens, token).code == ErrorCode.TOKEN_EXPIRED


def test_wrong_signature(tokens):
    token = jwt.encode({"sub": "1", "type": "access", "exp": int(time.time()) + 60}, "other-secret", algorithm="HS256")
    assert _decode_error(tokens, token).code == ErrorCode.TOKEN_INVALID


def test_garbage_token(tokens):
    assert _decode_error(tokens, "garbage").code == ErrorCode.TOKEN_INVALID


def test_non_access_token(tokens):
    token = jwt.encode({"sub": "1", "type": "refresh", "exp": int(time.time()) + 60}, "unit-secret", algorithm="HS256")
    assert _decode_error(tokens, token).code == ErrorCode.TOKEN_INVALID


def test_missing_exp_is_invalid(tokens):
    token = jwt.encode({"sub": "1", "type": "access"}, "unit-secret", algorithm="HS256")
    assert _decode_error(tokens, token).code == ErrorCode.TOKEN_INVALID


def test_non_numeric_subject_is_invalid(tokens):
    token = jwt.encode({"sub": "abc", "type": "access", "exp": int(time.time()) + 60}, "unit-secret", algorithm="HS256")
    assert _decode_error(tokens, token).code == ErrorCode.TOKEN_INVALID
