# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

"""框架层异常 → 统一信封

业务路由由 ElegantRouter 自己渲染错误；这里兜住框架自身抛出的异常
（路由不存在、方法不允许、FastAPI 原生参数校验等），同样返回 HTTP 200 信封。
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from usercenter.common import response
from usercenter.common.binder import describe_validation_error
from usercenter.common.codes import ErrorCode
from usercenter.common.errors import AppError
from usercenter.common.middlewares import request_context


_STATUS_TO_CODE = {
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.METHOD_NOT_ALLOWED,
    408: ErrorCode.TIMEOUT,
    422: ErrorCode.PARAM_ERROR,
    429: ErrorCode.TOO_MANY_REQUESTS,
}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    request_context(request).add_log_field("error_code", exc.code)
    return response.error(exc)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return response.fail(ErrorCode.PARAM_ERROR, "; ".join(parts))


async def pydantic_error_handler(request: Request, exc: ValidationError) -> JSONResponse:  # noqa: ARG001
    return response.fail(ErrorCode.PARAM_ERROR, describe_validation_error(exc))


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _STATUS_TO_CODE.get(exc.status_code, ErrorCode.SYSTEM_ERROR)
    detail = exc.detail if isinstance(exc.detail, str) else None
    return response.fail(code, detail)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(ValidationError, pydantic_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
