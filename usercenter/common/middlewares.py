# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

import json
import logging
import re
import traceback
from typing import Any, Callable, Optional
from urllib.parse import parse_qsl, urlencode

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from usercenter.common.context import RequestContext, bind_context, get_context, reset_context
from usercenter.common.logging import StructuredLogger
from usercenter.common.trace import INCOMING_TRACE_HEADER, TRACE_HEADER, bind_trace_id, reset_trace_id


_TRACE_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,128}$")
_MASKED_HEADERS = frozenset({"authorization", "cookie", "x-api-key"})
_MASKED_FIELDS = frozenset(
    {"password", "old_password", "new_password", "token", "access_token", "refresh_token", "api_key", "secret"}
)
_MASK = "***"
_BINARY_PREFIXES = ("application/octet-stream", "image/", "video/", "audio/")


def request_context(request: Request) -> RequestContext:
    """取当前请求的 RequestContext；没经过 ContextMiddleware 时临时创建一个"""
    ctx = getattr(request.state, "ctx", None)
    if ctx is None:
        ctx = get_context() or RequestContext()
        request.state.ctx = ctx
    return ctx


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else ""


def should_log_request_body(content_type: str) -> bool:
    # 只记录 JSON 和普通表单，文件上传不记
    if not content_type:
        return False
    return "application/json" in content_type or "application/x-www-form-urlencoded" in content_type


def is_file_upload(content_type: str) -> bool:
    return "multipart/form-data" in (content_type or "")


def should_log_response_body(content_type: str) -> bool:
    if not content_type:
        return True
    return not any(prefix in content_type for prefix in _BINARY_PREFIXES)


def mask_fields(value: Any) -> Any:
    """递归把敏感键的值替换为 ***"""
    if isinstance(value, dict):
        return {
            k: (_MASK if str(k).lower() in _MASKED_FIELDS else mask_fields(v))
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [mask_fields(v) for v in value]
    return value


def mask_body(body: bytes, content_type: str) -> str:
    """body 打码后转成日志文本；无法解析的 JSON 不落原文"""
    text = body.decode("utf-8", "replace")
    content_type = content_type or ""
    if "application/x-www-form-urlencoded" in content_type:
        pairs = parse_qsl(text, keep_blank_values=True)
        return urlencode(
            [(k, _MASK if k.lower() in _MASKED_FIELDS else v) for k, v in pairs],
            safe="*",
        )
    if "json" in content_type:
        try:
            data = json.loads(text)
        except ValueError:
            return f"<unparsable json, {len(body)} bytes>"
        return json.dumps(mask_fields(data), ensure_ascii=False, separators=(",", ":"))
    return text


def dump_request(request: Request) -> str:
    """请求行 + 头（敏感头打码），不含 body"""
    target = request.url.path
    if request.url.query:
        target = f"{target}?{request.url.query}"
    lines = [f"{request.method} {target} HTTP/{request.scope.get('http_version', '1.1')}"]
    for key, value in request.headers.items():
        lines.append(f"{key}: {_MASK if key.lower() in _MASKED_HEADERS else value}")
    return "\r\n".join(lines)


class ContextMiddleware(BaseHTTPMiddleware):
    """创建 RequestContext，注入 request.state / contextvar，回写 X-Trace-ID"""

    def __init__(
        self,
        app: ASGIApp,
        logger: Optional[StructuredLogger] = None,
        timeout: Optional[float] = None,
    ) -> None:
        super().__init__(app)
        self._logger = logger
        self._timeout = timeout

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = request.headers.get(INCOMING_TRACE_HEADER) or ""
        ctx = RequestContext(
            timeout=self._timeout,
            trace_id=incoming if _TRACE_ID_PATTERN.match(incoming) else None,
            logger=self._logger,
        )
        ctx.set_request_info(
            request.method,
            request.url.path,
            client_ip(request),
            request.headers.get("user-agent", ""),
        )
        request.state.ctx = ctx

        ctx_token = bind_context(ctx)
        trace_token = bind_trace_id(ctx.trace_id)
        try:
            response: Response = await call_next(request)
        finally:
            ctx.cancel()
            reset_trace_id(trace_token)
            reset_context(ctx_token)

        response.headers[TRACE_HEADER] = ctx.trace_id
        return response


class AccessLogMiddleware(BaseHTTPMiddleware):
    """访问日志：请求前记录入参，请求后按状态码选级别输出一条"""

    def __init__(self, app: ASGIApp, max_body_bytes: int = 1024) -> None:
        super().__init__(app)
        self._max_body_bytes = max_body_bytes

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        ctx = request_context(request)

        if request.url.query:
            ctx.add_log_field("query", request.url.query)

        content_type = request.headers.get("content-type", "")
        if should_log_request_body(content_type):
            body = await request.body()
            if body:
                ctx.add_log_field("request_body", mask_body(body, content_type)[: self._max_body_bytes])
        elif is_file_upload(content_type):
            ctx.add_log_field("request_type", "file_upload")

        response: Response = await call_next(request)

        status = response.status_code
        response_type = response.headers.get("content-type", "")
        if should_log_response_body(response_type):
            response, body = await self._buffer(response)
            size = len(body)
            if 0 < size < self._max_body_bytes:
                ctx.add_log_field("response_body", mask_body(body, response_type))
        else:
            size = int(response.headers.get("content-length") or 0)

        ctx.add_log_field("status", status)
        ctx.add_log_field("response_size", size)

        if status >= 500:
            ctx.log_error("HTTP Request")
        elif status >= 400:
            ctx.log_warn("HTTP Request")
        else:
            ctx.log_info("HTTP Request")
        return response

    @staticmethod
    async def _buffer(response: Response):
        chunks = []
        async for chunk in response.body_iterator:  # type: ignore[attr-defined]
            chunks.append(chunk if isinstance(chunk, bytes) else chunk.encode("utf-8"))
        body = b"".join(chunks)

        rebuilt = Response(content=body, status_code=response.status_code, background=response.background)
        rebuilt.raw_headers = list(response.raw_headers)
        return rebuilt, body


class RecoveryMiddleware(BaseHTTPMiddleware):
    """兜底：未预期异常记录堆栈后返回 500，进程不受影响"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:  # noqa: BLE001
            ctx = request_context(request)
            ctx.add_log_field("error", f"{type(exc).__name__}: {exc}")
            ctx.add_log_field("request", dump_request(request))
            ctx.add_log_field("stack", traceback.format_exc())
            ctx.log_error("[Recovery from panic]")
            if ctx.logger is None:
                logging.getLogger(__name__).exception("Unhandled error")
            return Response(status_code=500)
