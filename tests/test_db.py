# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

import logging

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from usercenter.common.trace import bind_trace_id, reset_trace_id
from usercenter.infra import db
from usercenter.infra.config import Settings


class StepClock:
    """每次调用前进 step 秒"""

    def __init__(self, step: float) -> None:
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


def sql_records(caplog, message):
    return [r for r in caplog.records if r.name == "usercenter.database" and r.getMessage() == message]


@pytest.fixture
def engine():
    eng = db.build_engine(Settings(DATABASE_URL="sqlite://", DB_SLOW_THRESHOLD_MS=500))
    yield eng
    eng.dispose()


def test_each_statement_is_logged_with_trace_id(engine, caplog):
    token = bind_trace_id("sql-trace")
    try:
        with caplog.at_level(logging.DEBUG, logger="usercenter.database"):
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
    finally:
        reset_trace_id(token)

    records = [r for r in sql_records(caplog, "SQL") if dict(r.fields)["sql"] == "SELECT 1"]
    assert records
    fields = dict(records[-1].fields)
    assert fields["trace_id"] == "sql-trace"
    assert "rows" in fields
    assert fields["elapsed_ms"] >= 0
    assert records[-1].levelno == logging.DEBUG


def test_trace_id_omitted_outside_requests(engine, caplog):
    with caplog.at_level(logging.DEBUG, logger="usercenter.database"):
        with engine.connect() as conn:
            conn.execute(text("SELECT 2"))

    fields = dict(sql_records(caplog, "SQL")[-1].fields)
    assert "trace_id" not in fields


def test_slow_statement_warns(engine, caplog, monkeypatch):
    monkeypatch.setattr(db, "_clock", StepClock(step=1.0))

    with caplog.at_level(logging.DEBUG, logger="usercenter.database"):
        with engine.connect() as conn:
            conn.execute(text("SELECT 3"))

    slow = [r for r in sql_records(caplog, "SLOW SQL") if dict(r.fields)["sql"] == "SELECT 3"]
    assert slow
    assert slow[-1].levelno == logging.WARNING
    assert dict(slow[-1].fields)["elapsed_ms"] == pytest.approx(1000.0)


def test_failed_statement_logs_error(engine, caplog):
    with caplog.at_level(logging.DEBUG, logger="usercenter.database"):
        with engine.connect() as conn:
            with pytest.raises(OperationalError):
                conn.execute(text("SELECT * FROM missing_table"))

    errors = sql_records(caplog, "SQL Error")
    assert errors
    fields = dict(errors[-1].fields)
    assert errors[-1].levelno == logging.ERROR
    assert "missing_table" in fields["error"]
    assert fields["sql"] == "SELECT * FROM missing_table"
