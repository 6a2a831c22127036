# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

"""用户业务

所有方法第一个参数都是 RequestContext；领域错误翻译成 AppError，
基础设施错误（DBError 等）原样往上抛，由适配层统一渲染。
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError

from usercenter.application.auth.password import PasswordHasher
from usercenter.application.auth.token_service import TokenService
from usercenter.common.codes import ErrorCode
from usercenter.common.context import RequestContext
from usercenter.common.errors import AppError, ForbiddenError, TooManyRequestsError, UnauthorizedError
from usercenter.domain import models, schemas
from usercenter.infra.cache import CacheBackend
from usercenter.infra.config import Settings
from usercenter.infra.user_repo import UserRepository


ROLE_ADMIN = "admin"


def info_cache_key(user_id: Any) -> str:
    return f"user:info:{user_id}"


def login_fail_key(username: str) -> str:
    return f"user:login_fail:{username}"


class UserUsecase:
    def __init__(
        self,
        repo: UserRepository,
        hasher: PasswordHasher,
        tokens: TokenService,
        cache: CacheBackend,
        settings: Settings,
    ) -> None:
        self._repo = repo
        self._hasher = hasher
        self._tokens = tokens
        self._cache = cache
        self._max_fails = int(settings.LOGIN_MAX_FAILS)
        self._lock_seconds = int(settings.LOGIN_LOCK_SECONDS)
        self._info_ttl = int(settings.USER_CACHE_TTL_SECONDS)

    # ---------- public ----------

    def register(self, ctx: RequestContext, req: schemas.RegisterRequest) -> schemas.MessageResponse:
        if self._repo.exists_by("username", req.username):
            raise AppError(ErrorCode.USERNAME_TAKEN)
        if self._repo.exists_by("email", req.email):
            raise AppError(ErrorCode.EMAIL_TAKEN)

        user = models.User(
            username=req.username,
            password_hash=self._hasher.hash(req.password),
            email=req.email,
        )
        try:
            user = self._repo.create(user)
        except IntegrityError as e:
            # 并发注册，唯一索引兜底
            raise AppError(ErrorCode.USER_ALREADY_EXISTS, str(e.orig)) from e

        ctx.log_info("user registered", user_id=user.id, new_username=user.username)
        return schemas.MessageResponse(message="register success")

    def login(self, ctx: RequestContext, req: schemas.LoginRequest) -> schemas.LoginResponse:
        fail_key = login_fail_key(req.username)
        fails = int(self._cache.get(fail_key) or 0)
        if self._max_fails > 0 and fails >= self._max_fails:
            ctx.log_warn("login locked", login_username=req.username, fails=fails)
            raise TooManyRequestsError("too many failed login attempts, try again later")

        user = self._repo.find_one(username=req.username)
        if user is None:
            raise AppError(ErrorCode.USER_NOT_EXIST)

        if not self._hasher.verify(req.password, user.password_hash):
            fails = self._cache.incr(fail_key)
            if fails == 1:
                self._cache.expire(fail_key, self._lock_seconds)
            ctx.log_warn("login password incorrect", login_username=req.username, fails=fails)
            raise AppError(ErrorCode.PASSWORD_INCORRECT)

        self._cache.delete(fail_key)
        if self._hasher.needs_rehash(user.password_hash):
            # 迭代次数调整过，登录成功时顺带升级
            self._repo.update(user.id, {"password_hash": self._hasher.hash(req.password)})

        issued = self._tokens.issue(user_id=user.id, username=user.username, role=user.role)
        ctx.log_info("user login", user_id=user.id, login_username=user.username)
        return schemas.LoginResponse(token=issued.token, expires_in=issued.expires_in)

    def list_users(self, ctx: RequestContext, req: schemas.ListRequest) -> schemas.ListResponse:
        rows, total = self._repo.list(
            page=req.page,
            page_size=req.page_size,
            username=req.username,
            email=req.email,
        )
        ctx.log_debug("list users", total=total, page=req.page)
        return schemas.ListResponse(
            list=[schemas.UserOut.model_validate(row) for row in rows],
            page=req.page,
            page_size=req.page_size,
            total=total,
        )

    def info(self, ctx: RequestContext) -> schemas.UserOut:
        user_id = self._current_user_id(ctx)
        key = info_cache_key(user_id)

        cached = self._cache.get(key)
        if cached is not None:
            ctx.set_field("cache_hit", True)
            return schemas.UserOut.model_validate(cached)

        user = self._repo.get(user_id)
        if user is None:
            raise AppError(ErrorCode.USER_NOT_EXIST)

        out = schemas.UserOut.model_validate(user)
        self._cache.set(key, out.model_dump(), ttl=self._info_ttl)
        ctx.set_field("cache_hit", False)
        return out

    def update(self, ctx: RequestContext, req: schemas.UpdateRequest) -> None:
        self._ensure_owner_or_admin(ctx, req.id)

        current = self._repo.get(req.id)
        if current is None:
            raise AppError(ErrorCode.USER_NOT_EXIST)

        values: Dict[str, Any] = {}
        if req.username and req.username != current.username:
            if self._repo.exists_by("username", req.username):
                raise AppError(ErrorCode.USERNAME_TAKEN)
            values["username"] = req.username
        if req.email and req.email != current.email:
            if self._repo.exists_by("email", req.email):
                raise AppError(ErrorCode.EMAIL_TAKEN)
            values["email"] = req.email
        if req.password:
            values["password_hash"] = self._hasher.hash(req.password)

        if not values:
            return None

        try:
            found = self._repo.update(req.id, values)
        except IntegrityError as e:
            raise AppError(ErrorCode.USER_UPDATE_FAILED, str(e.orig)) from e
        if not found:
            raise AppError(ErrorCode.USER_NOT_EXIST)

        self._cache.delete(info_cache_key(req.id))
        ctx.log_info("user updated", target_user_id=req.id, fields=",".join(sorted(values)))
        return None

    def delete(self, ctx: RequestContext, req: schemas.DeleteRequest) -> None:
        self._ensure_owner_or_admin(ctx, req.id)

        if not self._repo.delete(req.id):
            raise AppError(ErrorCode.USER_NOT_EXIST)

        self._cache.delete(info_cache_key(req.id))
        ctx.log_info("user deleted", target_user_id=req.id)
        return None

    # ---------- helpers ----------

    @staticmethod
    def _current_user_id(ctx: RequestContext) -> int:
        identity = ctx.identity
        if identity is None:
            raise UnauthorizedError("not logged in")
        return int(identity.user_id)

    def _ensure_owner_or_admin(self, ctx: RequestContext, target_id: int) -> None:
        user_id = self._current_user_id(ctx)
        identity = ctx.identity
        role: Optional[str] = identity.role if identity else None
        if user_id != target_id and role != ROLE_ADMIN:
            raise ForbiddenError("can only modify your own account")
