# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

import json
import logging
import logging.handlers
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Tuple, Union

from usercenter.common.trace import get_trace_id


Field = Tuple[str, Any]

_CONSOLE_FORMAT = "[%(asctime)s - %(levelname)s - trace=%(trace_id)s - %(name)s - %(message)s]"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _fields_of(record: logging.LogRecord) -> List[Field]:
    return list(getattr(record, "fields", None) or ())


def _render(value: Any) -> str:
    if isinstance(value, str):
        if not value or any(ch.isspace() for ch in value):
            return json.dumps(value, ensure_ascii=False)
        return value
    if isinstance(value, float):
        return f"{value:.6f}"
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return repr(value)


class TraceIdFilter(logging.Filter):
    """record.trace_id：优先取结构化字段里的 trace_id，其次取当前上下文"""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        trace_id = None
        for key, value in _fields_of(record):
            if key == "trace_id":
                trace_id = value
                break
        setattr(record, "trace_id", trace_id or get_trace_id())
        return True


class ConsoleFormatter(logging.Formatter):
    """人读格式，结构化字段以 k=v 追加在消息后"""

    def __init__(self) -> None:
        super().__init__(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT)

    def formatMessage(self, record: logging.LogRecord) -> str:  # noqa: N802
        line = super().formatMessage(record)
        pairs = [f"{k}={_render(v)}" for k, v in _fields_of(record) if k != "trace_id"]
        if pairs:
            line = f"{line} | {' '.join(pairs)}"
        return line


class JsonFormatter(logging.Formatter):
    """一行一个 JSON 对象，便于日志平台采集"""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            "trace_id": getattr(record, "trace_id", None) or get_trace_id(),
        }
        for key, value in _fields_of(record):
            payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str, separators=(",", ":"))


class StructuredLogger:
    """带结构化字段的日志门面：fields 为有序 (key, value) 列表"""

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def is_enabled_for(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

    def log(self, level: int, message: str, fields: Iterable[Field] = ()) -> None:
        if not self._logger.isEnabledFor(level):
            return
        self._logger.log(level, message, extra={"fields": list(fields)})

    def debug(self, message: str, **fields: Any) -> None:
        self.log(logging.DEBUG, message, fields.items())

    def info(self, message: str, **fields: Any) -> None:
        self.log(logging.INFO, message, fields.items())

    def warning(self, message: str, **fields: Any) -> None:
        self.log(logging.WARNING, message, fields.items())

    def error(self, message: str, **fields: Any) -> None:
        self.log(logging.ERROR, message, fields.items())


def _build_formatter(fmt: str) -> logging.Formatter:
    if fmt.lower() == "json":
        return JsonFormatter()
    return ConsoleFormatter()


def setup_logging(
    level: Union[int, str] = logging.INFO,
    fmt: str = "console",
    log_file: Optional[str] = None,
    max_bytes: int = 100 * 1024 * 1024,
    backups: int = 7,
) -> None:
    """初始化全局日志（可重复调用，不会重复添加 handler）"""

    root = logging.getLogger()
    root.setLevel(level.upper() if isinstance(level, str) else level)

    owned = [h for h in root.handlers if getattr(h, "_usercenter", False)]
    if not owned:
        handler: logging.Handler = logging.StreamHandler()
        handler.setFormatter(_build_formatter(fmt))
        setattr(handler, "_usercenter", True)
        root.addHandler(handler)

        # 文件轮转（可选）
        if log_file:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=max_bytes,
                backupCount=backups,
                encoding="utf-8",
            )
            file_handler.setFormatter(JsonFormatter())
            setattr(file_handler, "_usercenter", True)
            root.addHandler(file_handler)

    # 给现有 handler 全部加 filter
    for h in root.handlers:
        has_filter = any(isinstance(f, TraceIdFilter) for f in getattr(h, "filters", []))
        if not has_filter:
            h.addFilter(TraceIdFilter())
