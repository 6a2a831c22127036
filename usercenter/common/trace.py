# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

import uuid
from contextvars import ContextVar, Token


TRACE_HEADER = "X-Trace-ID"
INCOMING_TRACE_HEADER = "X-Request-Id"

_trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="-")


def new_trace_id() -> str:
    return uuid.uuid4().hex


def bind_trace_id(trace_id: str) -> Token:
    """绑定当前协程/线程的 trace_id，返回 token 供请求结束时 reset"""
    return _trace_id_ctx.set(trace_id or "-")


def reset_trace_id(token: Token) -> None:
    _trace_id_ctx.reset(token)


def get_trace_id() -> str:
    return _trace_id_ctx.get() or "-"
