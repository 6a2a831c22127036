# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description: 请求级上下文

"""请求级上下文 RequestContext

每个请求（或定时任务的每次执行）一个实例，贯穿 middleware / controller / service：

- trace_id、start_time 创建时确定，之后只读（不加锁）
- identity、request_info、custom fields、log fields 可被同一请求派生出的
  后台任务并发读写，统一走读写锁：读读并行，写独占
- 取消信号是协作式的：调用方自行轮询 is_cancelled() 或 wait()
"""

from __future__ import annotations

import logging
import threading
import time
import weakref
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

from usercenter.common.logging import Field, StructuredLogger
from usercenter.common.trace import new_trace_id


_MISSING = object()


class _RWLock:
    """写优先的读写锁"""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass(frozen=True)
class Identity:
    user_id: str
    username: str
    role: str


@dataclass(frozen=True)
class RequestInfo:
    method: str
    path: str
    client_ip: str
    user_agent: str


class RequestContext:
    def __init__(
        self,
        parent: Optional["RequestContext"] = None,
        *,
        timeout: Optional[float] = None,
        deadline: Optional[datetime] = None,
        trace_id: Optional[str] = None,
        logger: Optional[StructuredLogger] = None,
    ) -> None:
        self.trace_id: str = trace_id or new_trace_id()
        self.start_time: datetime = datetime.now(timezone.utc)
        self._started = time.monotonic()

        self._lock = _RWLock()
        self._identity: Optional[Identity] = None
        self._request_info: Optional[RequestInfo] = None
        self._custom_fields: Dict[str, Any] = {}
        self._log_fields: List[Field] = []
        self._logger = logger

        # 取消信号：自身 event + 截止时间；父级取消时级联到子级
        self._cancelled = threading.Event()
        self._children: "weakref.WeakSet[RequestContext]" = weakref.WeakSet()
        self._children_lock = threading.Lock()
        self._deadline = self._resolve_deadline(parent, timeout, deadline)

        if parent is not None:
            parent._attach_child(self)

    def _resolve_deadline(
        self,
        parent: Optional["RequestContext"],
        timeout: Optional[float],
        deadline: Optional[datetime],
    ) -> Optional[datetime]:
        candidates: List[datetime] = []
        if timeout is not None:
            candidates.append(self.start_time + timedelta(seconds=timeout))
        if deadline is not None:
            if deadline.tzinfo is None:
                deadline = deadline.replace(tzinfo=timezone.utc)
            candidates.append(deadline)
        if parent is not None and parent.deadline() is not None:
            candidates.append(parent.deadline())
        return min(candidates) if candidates else None

    def _attach_child(self, child: "RequestContext") -> None:
        with self._children_lock:
            if self._cancelled.is_set():
                child.cancel()
                return
            self._children.add(child)

    # ---------- identity / request info ----------

    def set_identity(self, user_id: Any, username: str, role: str) -> None:
        identity = Identity(user_id=str(user_id), username=username, role=role)
        with self._lock.write():
            self._identity = identity
            self._log_fields.extend(
                [("user_id", identity.user_id), ("username", username), ("user_role", role)]
            )

    @property
    def identity(self) -> Optional[Identity]:
        with self._lock.read():
            return self._identity

    def set_request_info(self, method: str, path: str, client_ip: str, user_agent: str) -> None:
        info = RequestInfo(method=method, path=path, client_ip=client_ip, user_agent=user_agent)
        with self._lock.write():
            self._request_info = info
            self._log_fields.extend(
                [("method", method), ("path", path), ("client_ip", client_ip), ("user_agent", user_agent)]
            )

    @property
    def request_info(self) -> Optional[RequestInfo]:
        with self._lock.read():
            return self._request_info

    # ---------- fields ----------

    def set_field(self, key: str, value: Any) -> None:
        with self._lock.write():
            self._custom_fields[key] = value
            self._log_fields.append((key, value))

    def get_field(self, key: str, default: Any = None) -> Tuple[Any, bool]:
        with self._lock.read():
            value = self._custom_fields.get(key, _MISSING)
        if value is _MISSING:
            return default, False
        return value, True

    def custom_fields(self) -> Dict[str, Any]:
        with self._lock.read():
            return dict(self._custom_fields)

    def add_log_field(self, key: str, value: Any) -> None:
        with self._lock.write():
            self._log_fields.append((key, value))

    def log_fields(self) -> List[Field]:
        with self._lock.read():
            return list(self._log_fields)

    # ---------- logging ----------

    def set_logger(self, logger: Optional[StructuredLogger]) -> None:
        with self._lock.write():
            self._logger = logger

    @property
    def logger(self) -> Optional[StructuredLogger]:
        with self._lock.read():
            return self._logger

    def build_log_fields(self, extra: Dict[str, Any]) -> List[Field]:
        """固定顺序：基础字段 → 累积字段 → 调用方字段"""
        with self._lock.read():
            fields: List[Field] = [("trace_id", self.trace_id), ("duration", self.elapsed())]
            fields.extend(self._log_fields)
        fields.extend(extra.items())
        return fields

    def _emit(self, level: int, message: str, extra: Dict[str, Any]) -> None:
        logger = self.logger
        if logger is None or not logger.is_enabled_for(level):
            return
        logger.log(level, message, self.build_log_fields(extra))

    def log_debug(self, message: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, message, fields)

    def log_info(self, message: str, **fields: Any) -> None:
        self._emit(logging.INFO, message, fields)

    def log_warn(self, message: str, **fields: Any) -> None:
        self._emit(logging.WARNING, message, fields)

    def log_error(self, message: str, **fields: Any) -> None:
        self._emit(logging.ERROR, message, fields)

    # ---------- timing / cancellation ----------

    def elapsed(self) -> float:
        """自创建起经过的秒数"""
        return time.monotonic() - self._started

    def deadline(self) -> Optional[datetime]:
        return self._deadline

    def cancel(self) -> None:
        self._cancelled.set()
        with self._children_lock:
            children = list(self._children)
            self._children.clear()
        for child in children:
            child.cancel()

    def is_cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        if self._deadline is not None and datetime.now(timezone.utc) >= self._deadline:
            return True
        return False

    def wait(self, timeout: Optional[float] = None) -> bool:
        """阻塞直到被取消/到达截止时间/超时，返回是否已取消"""
        limit = timeout
        if self._deadline is not None:
            remaining = (self._deadline - datetime.now(timezone.utc)).total_seconds()
            limit = remaining if limit is None else min(limit, remaining)
        if limit is not None and limit <= 0:
            return self.is_cancelled()
        self._cancelled.wait(limit)
        return self.is_cancelled()

    def clone(self) -> "RequestContext":
        """派生给后台子任务：同 trace_id，新的开始时间和独立的取消信号"""
        with self._lock.read():
            child = RequestContext(trace_id=self.trace_id, logger=self._logger)
            child._identity = self._identity
            child._request_info = self._request_info
            child._custom_fields = dict(self._custom_fields)
            child._log_fields = list(self._log_fields)
        return child

    def __repr__(self) -> str:
        return f"RequestContext(trace_id={self.trace_id!r})"


_current_ctx: ContextVar[Optional[RequestContext]] = ContextVar("request_context", default=None)


def bind_context(ctx: Optional[RequestContext]):
    return _current_ctx.set(ctx)


def reset_context(token) -> None:
    _current_ctx.reset(token)


def get_context() -> Optional[RequestContext]:
    return _current_ctx.get()


def must_get_context() -> RequestContext:
    ctx = _current_ctx.get()
    if ctx is None:
        raise RuntimeError("request context not bound")
    return ctx
