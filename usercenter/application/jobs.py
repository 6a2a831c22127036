# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

from usercenter.common.context import RequestContext
from usercenter.infra.scheduler import JobScheduler
from usercenter.infra.user_repo import UserRepository


USER_COUNT_REPORT_SPEC = "0 * * * *"


def user_count_report(repo: UserRepository):
    def run(ctx: RequestContext) -> int:
        total = repo.count()
        ctx.log_info("user count report", total=total)
        return total

    return run


def register_jobs(scheduler: JobScheduler, repo: UserRepository) -> None:
    scheduler.add_job(
        USER_COUNT_REPORT_SPEC,
        "user_count_report",
        user_count_report(repo),
        description="每小时统计一次用户总数",
    )
