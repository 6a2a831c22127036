# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

"""ElegantRouter：把 (ctx[, req]) -> result 形式的业务函数适配成 HTTP 路由

- 注册时解析第二个参数的 pydantic 类型，请求时按类型绑定参数
- 中间件顺序：全局(use) → 分组(group) → 单路由，最后才是业务函数
- 业务函数抛 AppError / 普通异常 → 统一错误信封；编程错误类异常交给 Recovery
"""

from __future__ import annotations

import inspect
import typing
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Type

from fastapi import APIRouter
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import Response

from usercenter.common import response
from usercenter.common.binder import bind_request
from usercenter.common.errors import AppError
from usercenter.common.middlewares import request_context


CallNext = Callable[[Request], Awaitable[Response]]
RouteMiddleware = Callable[[Request, CallNext], Awaitable[Response]]

# 视为“崩溃”的异常：不转信封，直接冒泡到 RecoveryMiddleware
FAULT_TYPES = (LookupError, AttributeError, TypeError, NameError, AssertionError, ArithmeticError)

_POSITIONAL = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)


def resolve_request_model(handler: Callable[..., Any]) -> Optional[Type[BaseModel]]:
    """(ctx) → None；(ctx, req: Model) → Model；其余签名注册时直接报错"""
    params = [p for p in inspect.signature(handler).parameters.values() if p.kind in _POSITIONAL]
    name = getattr(handler, "__qualname__", repr(handler))
    if len(params) == 1:
        return None
    if len(params) != 2:
        raise TypeError(f"handler {name} must accept (ctx) or (ctx, req)")

    hints = typing.get_type_hints(handler)
    model = hints.get(params[1].name)
    if not (isinstance(model, type) and issubclass(model, BaseModel)):
        raise TypeError(f"handler {name}: request parameter must be annotated with a pydantic model")
    return model


def adapt_handler(handler: Callable[..., Any]) -> CallNext:
    model = resolve_request_model(handler)
    is_async = inspect.iscoroutinefunction(handler)

    async def call(request: Request) -> Response:
        ctx = request_context(request)
        args: List[Any] = [ctx]
        if model is not None:
            args.append(await bind_request(request, model))

        if is_async:
            result = await handler(*args)
        else:
            result = await run_in_threadpool(handler, *args)
        return response.success(result)

    return call


def _link(middleware: RouteMiddleware, call_next: CallNext) -> CallNext:
    async def call(request: Request) -> Response:
        return await middleware(request, call_next)

    return call


def build_endpoint(call: CallNext, middlewares: Sequence[RouteMiddleware]) -> CallNext:
    chain = call
    for middleware in reversed(middlewares):
        chain = _link(middleware, chain)

    async def endpoint(request: Request) -> Response:
        ctx = request_context(request)
        try:
            return await chain(request)
        except AppError as exc:
            ctx.add_log_field("error_code", exc.code)
            return response.error(exc)
        except FAULT_TYPES:
            raise
        except Exception as exc:  # noqa: BLE001
            ctx.add_log_field("error", f"{type(exc).__name__}: {exc}")
            return response.error(exc)

    return endpoint


class ElegantRouter:
    def __init__(
        self,
        router: Optional[APIRouter] = None,
        prefix: str = "",
        middlewares: Sequence[RouteMiddleware] = (),
    ) -> None:
        self._router = router if router is not None else APIRouter()
        self._prefix = prefix.rstrip("/")
        self._middlewares: List[RouteMiddleware] = list(middlewares)

    @property
    def api_router(self) -> APIRouter:
        return self._router

    @property
    def prefix(self) -> str:
        return self._prefix

    def use(self, *middlewares: RouteMiddleware) -> "ElegantRouter":
        """追加中间件，只影响之后注册的路由"""
        self._middlewares.extend(middlewares)
        return self

    def group(self, prefix: str, *middlewares: RouteMiddleware) -> "ElegantRouter":
        return ElegantRouter(self._router, self._join(prefix), [*self._middlewares, *middlewares])

    def with_middleware(self, *middlewares: RouteMiddleware) -> "ElegantRouter":
        return ElegantRouter(self._router, self._prefix, [*self._middlewares, *middlewares])

    def handle(
        self,
        method: str,
        path: str,
        handler: Callable[..., Any],
        *middlewares: RouteMiddleware,
    ) -> None:
        endpoint = build_endpoint(adapt_handler(handler), [*self._middlewares, *middlewares])
        self._router.add_api_route(
            self._join(path),
            endpoint,
            methods=[method.upper()],
            response_model=None,
            name=getattr(handler, "__name__", None),
        )

    def get(self, path: str, handler: Callable[..., Any], *middlewares: RouteMiddleware) -> None:
        self.handle("GET", path, handler, *middlewares)

    def post(self, path: str, handler: Callable[..., Any], *middlewares: RouteMiddleware) -> None:
        self.handle("POST", path, handler, *middlewares)

    def put(self, path: str, handler: Callable[..., Any], *middlewares: RouteMiddleware) -> None:
        self.handle("PUT", path, handler, *middlewares)

    def patch(self, path: str, handler: Callable[..., Any], *middlewares: RouteMiddleware) -> None:
        self.handle("PATCH", path, handler, *middlewares)

    def delete(self, path: str, handler: Callable[..., Any], *middlewares: RouteMiddleware) -> None:
        self.handle("DELETE", path, handler, *middlewares)

    def _join(self, path: str) -> str:
        path = path.strip("/")
        if not path:
            return self._prefix or "/"
        return f"{self._prefix}/{path}"
