# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

from typing import Optional

from usercenter.common.codes import ErrorCode, get_message


class AppError(Exception):
    """异常统一：code 决定 message，detail 为可选补充说明"""

    def __init__(self, code: int, detail: Optional[str] = None) -> None:
        self._code = int(code)
        self._message = get_message(self._code)
        self._detail = detail or None
        super().__init__(str(self))

    @property
    def code(self) -> int:
        return self._code

    @property
    def message(self) -> str:
        return self._message

    @property
    def detail(self) -> Optional[str]:
        return self._detail

    def __str__(self) -> str:
        if self._detail:
            return f"code: {self._code}, message: {self._message}, detail: {self._detail}"
        return f"code: {self._code}, message: {self._message}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self._code}, detail={self._detail!r})"


class ParamError(AppError):
    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(ErrorCode.PARAM_ERROR, detail)


class UnauthorizedError(AppError):
    def __init__(self, detail: Optional[str] = None, code: int = ErrorCode.UNAUTHORIZED) -> None:
        super().__init__(code, detail)


class ForbiddenError(AppError):
    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(ErrorCode.FORBIDDEN, detail)


class NotFoundError(AppError):
    def __init__(self, detail: Optional[str] = None, code: int = ErrorCode.NOT_FOUND) -> None:
        super().__init__(code, detail)


class TooManyRequestsError(AppError):
    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(ErrorCode.TOO_MANY_REQUESTS, detail)


class DBError(AppError):
    def __init__(self, detail: Optional[str] = None, code: int = ErrorCode.DB_ERROR) -> None:
        super().__init__(code, detail)
