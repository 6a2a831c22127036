# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

from typing import Any, Dict, Iterable

from fastapi import APIRouter

from usercenter.api.middlewares import AdminMiddleware, ApiKeyMiddleware, AuthMiddleware, RateLimitMiddleware
from usercenter.application.auth.token_service import TokenService
from usercenter.application.user.usecase import UserUsecase
from usercenter.common.context import RequestContext
from usercenter.common.router import ElegantRouter
from usercenter.domain import schemas
from usercenter.infra.cache import CacheBackend


API_PREFIX = "/api/v1"


class UserController:
    def __init__(self, uc: UserUsecase) -> None:
        self._uc = uc

    def register(self, ctx: RequestContext, req: schemas.RegisterRequest) -> schemas.MessageResponse:
        return self._uc.register(ctx, req)

    def login(self, ctx: RequestContext, req: schemas.LoginRequest) -> schemas.LoginResponse:
        return self._uc.login(ctx, req)

    def list(self, ctx: RequestContext, req: schemas.ListRequest) -> schemas.ListResponse:
        return self._uc.list_users(ctx, req)

    def info(self, ctx: RequestContext) -> schemas.UserOut:
        return self._uc.info(ctx)

    def profile(self, ctx: RequestContext) -> Dict[str, Any]:
        user = self._uc.info(ctx)
        identity = ctx.identity
        return {
            "user": user,
            "role": identity.role if identity else None,
            "trace_id": ctx.trace_id,
        }

    def edit(self, ctx: RequestContext, req: schemas.UpdateRequest) -> None:
        return self._uc.update(ctx, req)

    def delete(self, ctx: RequestContext, req: schemas.DeleteRequest) -> None:
        return self._uc.delete(ctx, req)

    def admin_users(self, ctx: RequestContext, req: schemas.ListRequest) -> schemas.ListResponse:
        return self._uc.list_users(ctx, req)


def health(ctx: RequestContext) -> Dict[str, str]:
    return {"status": "ok"}


def api_data(ctx: RequestContext) -> Dict[str, str]:
    return {"data": "api data"}


def build_router(
    uc: UserUsecase,
    tokens: TokenService,
    cache: CacheBackend,
    *,
    rate_limit_per_minute: int = 60,
    api_keys: Iterable[str] = (),
) -> APIRouter:
    root = ElegantRouter()
    root.get("/health", health)

    controller = UserController(uc)
    auth = AuthMiddleware(tokens)

    user = root.group(f"{API_PREFIX}/user")
    user.post("/register", controller.register)
    user.post("/login", controller.login)
    user.post("/list", controller.list)

    authed = user.with_middleware(auth)
    authed.get("/info", controller.info)
    authed.post("/edit", controller.edit)
    authed.post("/delete", controller.delete)
    authed.get("/profile", controller.profile, RateLimitMiddleware(cache, rate_limit_per_minute, 60))

    admin = root.group(f"{API_PREFIX}/admin", auth, AdminMiddleware())
    admin.get("/users", controller.admin_users)

    # 服务间调用，X-API-Key 鉴权
    service = root.group(f"{API_PREFIX}/api", ApiKeyMiddleware(api_keys))
    service.get("/data", api_data)

    return root.api_router
