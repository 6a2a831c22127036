# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

import logging

from usercenter.common.logging import StructuredLogger


"""统一日志出口

日志初始化由 usercenter.common.logging.setup_logging() 负责。
这里仅返回命名 logger（按模块区分：api / database / cache / cron），避免重复添加 handler。
"""


ylogger = logging.getLogger("usercenter")


def get_logger(module: str) -> StructuredLogger:
    return StructuredLogger(ylogger.getChild(module))


def api_logger() -> StructuredLogger:
    return get_logger("api")


def database_logger() -> StructuredLogger:
    return get_logger("database")


def cache_logger() -> StructuredLogger:
    return get_logger("cache")


def cron_logger() -> StructuredLogger:
    return get_logger("cron")
