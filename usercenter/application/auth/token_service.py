# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict

import jwt

from usercenter.common.codes import ErrorCode
from usercenter.common.errors import UnauthorizedError
from usercenter.infra.config import Settings


@dataclass
class IssuedToken:
    token: str
    expires_in: int


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    username: str
    role: str


class TokenService:
    def __init__(self, settings: Settings) -> None:
        self._jwt_secret = settings.JWT_SECRET_KEY
        self._jwt_alg = "HS256"
        self._ttl = int(settings.ACCESS_TOKEN_EXPIRE_MINUTES) * 60

    def issue(self, *, user_id: int, username: str, role: str) -> IssuedToken:
        now = int(time.time())
        exp = now + self._ttl

        payload: Dict[str, Any] = {
            "sub": str(user_id),
            "username": username,
            "role": role,
            "type": "access",
            "iat": now,
            "exp": exp,
        }
        token = jwt.encode(payload, self._jwt_secret, algorithm=self._jwt_alg)
        return IssuedToken(token=token, expires_in=max(exp - now, 0))

    def decode(self, token: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                self._jwt_secret,
                algorithms=[self._jwt_alg],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise UnauthorizedError("token expired", code=ErrorCode.TOKEN_EXPIRED) from e
        except jwt.InvalidTokenError as e:
            raise UnauthorizedError(str(e) or "invalid token", code=ErrorCode.TOKEN_INVALID) from e

        if payload.get("type") != "access":
            raise UnauthorizedError("not an access token", code=ErrorCode.TOKEN_INVALID)
        try:
            user_id = int(payload["sub"])
        except (TypeError, ValueError) as e:
            raise UnauthorizedError("invalid subject", code=ErrorCode.TOKEN_INVALID) from e

        return TokenClaims(
            user_id=user_id,
            username=str(payload.get("username", "")),
            role=str(payload.get("role", "user")),
        )
