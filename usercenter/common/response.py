# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

"""统一响应信封 {code, message, data, detail?}

除 Recovery 兜底的 500 外，所有响应都是 HTTP 200，业务结果看 code。
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from usercenter.common.codes import ErrorCode, get_message
from usercenter.common.errors import AppError


def envelope(code: int, message: str, data: Any = None, detail: Optional[str] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "code": int(code),
        "message": message,
        "data": data,
    }
    if detail:
        payload["detail"] = detail
    return payload


def success_payload(data: Any = None) -> Dict[str, Any]:
    return envelope(ErrorCode.SUCCESS, get_message(ErrorCode.SUCCESS), jsonable_encoder(data))


def error_payload(exc: BaseException) -> Dict[str, Any]:
    if isinstance(exc, AppError):
        return envelope(exc.code, exc.message, None, exc.detail)
    return envelope(
        ErrorCode.SYSTEM_ERROR,
        get_message(ErrorCode.SYSTEM_ERROR),
        None,
        str(exc) or type(exc).__name__,
    )


def success(data: Any = None) -> JSONResponse:
    return JSONResponse(status_code=200, content=success_payload(data))


def error(exc: BaseException) -> JSONResponse:
    return JSONResponse(status_code=200, content=error_payload(exc))


def fail(code: int, detail: Optional[str] = None) -> JSONResponse:
    return JSONResponse(status_code=200, content=envelope(code, get_message(code), None, detail))
