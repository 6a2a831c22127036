# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: 错误码与默认文案

from __future__ import annotations

from enum import IntEnum
from typing import Dict


class ErrorCode(IntEnum):
    SUCCESS = 0

    # 系统级 (100xx)
    SYSTEM_ERROR = 10001
    PARAM_ERROR = 10002
    DB_ERROR = 10003
    UNAUTHORIZED = 10004
    FORBIDDEN = 10005
    NOT_FOUND = 10006
    METHOD_NOT_ALLOWED = 10007
    TOO_MANY_REQUESTS = 10008
    TIMEOUT = 10009

    # 用户 (200xx)
    USER_NOT_EXIST = 20001
    PASSWORD_INCORRECT = 20002
    TOKEN_EXPIRED = 20003
    TOKEN_INVALID = 20004
    USER_ALREADY_EXISTS = 20005
    USERNAME_TAKEN = 20006
    EMAIL_TAKEN = 20007
    USER_CREATE_FAILED = 20008
    USER_UPDATE_FAILED = 20009
    USER_DELETE_FAILED = 20010

    # 数据库 (202xx)
    CONNECTION_FAILED = 20201
    TRANSACTION_FAILED = 20202


_MESSAGES: Dict[int, str] = {
    ErrorCode.SUCCESS: "success",
    ErrorCode.SYSTEM_ERROR: "system error",
    ErrorCode.PARAM_ERROR: "invalid parameters",
    ErrorCode.DB_ERROR: "database error",
    ErrorCode.UNAUTHORIZED: "unauthorized",
    ErrorCode.FORBIDDEN: "forbidden",
    ErrorCode.NOT_FOUND: "resource not found",
    ErrorCode.METHOD_NOT_ALLOWED: "method not allowed",
    ErrorCode.TOO_MANY_REQUESTS: "too many requests",
    ErrorCode.TIMEOUT: "request timeout",
    ErrorCode.USER_NOT_EXIST: "user does not exist",
    ErrorCode.PASSWORD_INCORRECT: "incorrect password",
    ErrorCode.TOKEN_EXPIRED: "token expired",
    ErrorCode.TOKEN_INVALID: "invalid token",
    ErrorCode.USER_ALREADY_EXISTS: "user already exists",
    ErrorCode.USERNAME_TAKEN: "username already taken",
    ErrorCode.EMAIL_TAKEN: "email already taken",
    ErrorCode.USER_CREATE_FAILED: "failed to create user",
    ErrorCode.USER_UPDATE_FAILED: "failed to update user",
    ErrorCode.USER_DELETE_FAILED: "failed to delete user",
    ErrorCode.CONNECTION_FAILED: "database connection failed",
    ErrorCode.TRANSACTION_FAILED: "database transaction failed",
}


def get_message(code: int) -> str:
    """按错误码取文案，未知错误码统一返回 system error"""
    try:
        return _MESSAGES[int(code)]
    except (KeyError, TypeError, ValueError):
        return _MESSAGES[ErrorCode.SYSTEM_ERROR]
