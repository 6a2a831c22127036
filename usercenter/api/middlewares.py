# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

"""路由级中间件：async (request, call_next) -> Response

抛 AppError 即中断链路，由 ElegantRouter 渲染成错误信封。
"""

from __future__ import annotations

import hmac
import time
from typing import Iterable

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import Response

from usercenter.application.auth.token_service import TokenService
from usercenter.application.user.usecase import ROLE_ADMIN
from usercenter.common.errors import ForbiddenError, TooManyRequestsError, UnauthorizedError
from usercenter.common.middlewares import client_ip, request_context
from usercenter.common.router import CallNext
from usercenter.infra.cache import CacheBackend


_BEARER_PREFIX = "Bearer "


class AuthMiddleware:
    """校验 Authorization: Bearer <token>，通过后写入身份"""

    def __init__(self, tokens: TokenService) -> None:
        self._tokens = tokens

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        ctx = request_context(request)

        header = request.headers.get("authorization")
        if not header:
            raise UnauthorizedError("missing token")
        if not header.startswith(_BEARER_PREFIX):
            raise UnauthorizedError("token format error, expected 'Bearer <token>'")
        token = header[len(_BEARER_PREFIX):].strip()
        if not token:
            raise UnauthorizedError("empty token")

        ctx.set_field("token_length", len(token))
        claims = self._tokens.decode(token)
        ctx.set_identity(claims.user_id, claims.username, claims.role)
        return await call_next(request)


class AdminMiddleware:
    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        identity = request_context(request).identity
        if identity is None:
            raise UnauthorizedError("not logged in")
        if identity.role != ROLE_ADMIN:
            raise ForbiddenError("admin only")
        return await call_next(request)


class RateLimitMiddleware:
    """固定窗口限流：按 客户端IP + 路径 计数"""

    def __init__(self, cache: CacheBackend, limit: int, window: int = 60) -> None:
        self._cache = cache
        self._limit = int(limit)
        self._window = int(window)

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        if self._limit <= 0:
            return await call_next(request)

        bucket = int(time.time()) // self._window
        key = f"ratelimit:{client_ip(request)}:{request.url.path}:{bucket}"
        # 缓存客户端是同步的，走线程池
        count = await run_in_threadpool(self._cache.incr, key)
        if count == 1:
            await run_in_threadpool(self._cache.expire, key, self._window)

        if count > self._limit:
            request_context(request).add_log_field("rate_limited", True)
            raise TooManyRequestsError(f"limit {self._limit} requests per {self._window}s")
        return await call_next(request)


class ApiKeyMiddleware:
    """校验 X-API-Key，未配置任何 key 时一律拒绝"""

    HEADER = "X-API-Key"

    def __init__(self, api_keys: Iterable[str]) -> None:
        self._keys = [k for k in api_keys if k]

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        key = request.headers.get(self.HEADER, "")
        if not key:
            raise UnauthorizedError("missing api key")
        if not any(hmac.compare_digest(key.encode(), k.encode()) for k in self._keys):
            raise UnauthorizedError("invalid api key")

        request_context(request).set_field("api_key_auth", True)
        return await call_next(request)
