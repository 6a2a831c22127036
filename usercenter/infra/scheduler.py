# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

"""定时任务

基于 APScheduler BackgroundScheduler，每次执行都包一层 RequestContext：
独立 trace_id、job_name 字段、开始/成功/失败日志，异常不会打断调度器。
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from usercenter.common.context import RequestContext
from usercenter.common.errors import AppError
from usercenter.common.logging import StructuredLogger
from usercenter.infra.ylogger import cron_logger


JobHandler = Callable[[RequestContext], Any]


@dataclass
class JobInfo:
    name: str
    description: str
    spec: str


def parse_cron(spec: str) -> CronTrigger:
    """支持 5 段（分 时 日 月 周）和 6 段（秒 分 时 日 月 周）表达式"""
    parts = spec.split()
    try:
        if len(parts) == 5:
            return CronTrigger.from_crontab(spec)
        if len(parts) == 6:
            second, minute, hour, day, month, day_of_week = parts
            return CronTrigger(
                second=second,
                minute=minute,
                hour=hour,
                day=day,
                month=month,
                day_of_week=day_of_week,
            )
    except ValueError as e:
        raise ValueError(f"invalid cron expression: {spec!r}: {e}") from e
    raise ValueError(f"invalid cron expression: {spec!r}: expected 5 or 6 fields")


def wrap_job(name: str, description: str, handler: JobHandler, logger: Optional[StructuredLogger]) -> Callable[[], None]:
    def run() -> None:
        ctx = RequestContext(logger=logger)
        ctx.set_field("job_name", name)
        ctx.set_field("job_description", description)
        ctx.log_info("job started")
        try:
            handler(ctx)
        except AppError as e:
            ctx.log_error("job failed", error=str(e))
        except Exception as e:  # noqa: BLE001
            ctx.log_error("job crashed", error=f"{type(e).__name__}: {e}", stack=traceback.format_exc())
        else:
            ctx.log_info("job finished")
        finally:
            ctx.cancel()

    return run


class JobScheduler:
    def __init__(self, logger: Optional[StructuredLogger] = None) -> None:
        self._scheduler = BackgroundScheduler(timezone="UTC")
        self._logger = logger or cron_logger()
        self._jobs: Dict[str, JobInfo] = {}

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    def add_job(self, spec: str, name: str, handler: JobHandler, description: str = "") -> None:
        try:
            trigger = parse_cron(spec)
        except ValueError as e:
            self._logger.error("add job failed", job_name=name, spec=spec, error=str(e))
            raise

        self._scheduler.add_job(
            wrap_job(name, description, handler, self._logger),
            trigger,
            id=name,
            name=name,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._jobs[name] = JobInfo(name=name, description=description, spec=spec)
        self._logger.info("job added", job_name=name, job_description=description, spec=spec)

    def remove_job(self, name: str) -> None:
        if self._jobs.pop(name, None) is not None:
            self._scheduler.remove_job(name)

    def jobs(self) -> List[JobInfo]:
        return list(self._jobs.values())

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            self._logger.info("scheduler started", jobs=len(self._jobs))

    def shutdown(self, wait: bool = True) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            self._logger.info("scheduler stopped")
