# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

import time
from typing import Any, Dict

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from usercenter.common.trace import get_trace_id
from usercenter.infra.config import Settings
from usercenter.infra.ylogger import database_logger


_clock = time.perf_counter
_START_KEY = "usercenter_query_start"


class Base(DeclarativeBase):
    """SQLAlchemy ORM 基类"""


def build_engine(settings: Settings) -> Engine:
    url = settings.DATABASE_URL
    kwargs: Dict[str, Any] = {
        "pool_pre_ping": True,
        "future": True,
        "echo": settings.DB_ECHO,
    }
    if url.startswith("sqlite"):
        # 请求在线程池里执行，sqlite 需要放开同线程限制；内存库所有连接共用一个
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_size"] = settings.DB_POOL_SIZE
        kwargs["pool_recycle"] = 3600
    engine = create_engine(url, **kwargs)
    install_sql_logging(engine, settings.DB_SLOW_THRESHOLD_MS)
    return engine


def _sql_fields(statement: str, elapsed_ms: float, rows: int) -> Dict[str, Any]:
    fields: Dict[str, Any] = {"sql": statement, "rows": rows, "elapsed_ms": round(elapsed_ms, 3)}
    trace_id = get_trace_id()
    if trace_id != "-":
        fields["trace_id"] = trace_id
    return fields


def _elapsed_ms(conn) -> float:
    starts = conn.info.get(_START_KEY)
    if not starts:
        return 0.0
    return (_clock() - starts.pop()) * 1000


def install_sql_logging(engine: Engine, slow_threshold_ms: int) -> None:
    """每条 SQL 记一条日志：正常 DEBUG，超过阈值 WARNING（SLOW SQL），出错 ERROR（SQL Error）"""
    log = database_logger()

    @event.listens_for(engine, "before_cursor_execute")
    def _before(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault(_START_KEY, []).append(_clock())

    @event.listens_for(engine, "after_cursor_execute")
    def _after(conn, cursor, statement, parameters, context, executemany):
        elapsed = _elapsed_ms(conn)
        fields = _sql_fields(statement, elapsed, cursor.rowcount)
        if elapsed > slow_threshold_ms:
            log.warning("SLOW SQL", **fields)
        else:
            log.debug("SQL", **fields)

    @event.listens_for(engine, "handle_error")
    def _error(exc_ctx):
        conn = exc_ctx.connection
        elapsed = _elapsed_ms(conn) if conn is not None else 0.0
        fields = _sql_fields(exc_ctx.statement or "", elapsed, -1)
        log.error("SQL Error", error=str(exc_ctx.original_exception), **fields)


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        future=True,
    )


def create_tables(engine: Engine) -> None:
    from usercenter.domain import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
