# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from usercenter import __version__
from usercenter.api.user import build_router
from usercenter.application.auth.password import PasswordHasher
from usercenter.application.auth.token_service import TokenService
from usercenter.application.jobs import register_jobs
from usercenter.application.user.usecase import UserUsecase
from usercenter.common.exception_handlers import register_exception_handlers
from usercenter.common.logging import setup_logging
from usercenter.common.middlewares import AccessLogMiddleware, ContextMiddleware, RecoveryMiddleware
from usercenter.infra.cache import CacheBackend, build_cache
from usercenter.infra.config import Settings
from usercenter.infra.db import build_engine, build_session_factory, create_tables
from usercenter.infra.scheduler import JobScheduler
from usercenter.infra.user_repo import UserRepository
from usercenter.infra.ylogger import api_logger, cron_logger, ylogger


def create_app(settings: Optional[Settings] = None, *, cache: Optional[CacheBackend] = None) -> FastAPI:
    settings = settings or Settings()

    setup_logging(
        settings.LOG_LEVEL,
        settings.LOG_FORMAT,
        log_file=settings.LOG_FILE,
        max_bytes=settings.LOG_FILE_MAX_BYTES,
        backups=settings.LOG_FILE_BACKUPS,
    )

    # ---------- collaborators ----------

    engine = build_engine(settings)
    if settings.AUTO_CREATE_TABLES:
        create_tables(engine)
    repo = UserRepository(build_session_factory(engine))
    cache = cache if cache is not None else build_cache(settings)

    hasher = PasswordHasher(iterations=settings.PASSWORD_HASH_ITERATIONS)
    tokens = TokenService(settings)
    usecase = UserUsecase(repo, hasher, tokens, cache, settings)

    scheduler = JobScheduler(cron_logger())
    register_jobs(scheduler, repo)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.SCHEDULER_ENABLED:
            scheduler.start()
        ylogger.info("%s started (env=%s)", settings.APP_NAME, settings.ENV)
        try:
            yield
        finally:
            scheduler.shutdown(wait=False)
            engine.dispose()
            ylogger.info("%s stopped", settings.APP_NAME)

    app = FastAPI(
        title=settings.APP_NAME,
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.repo = repo
    app.state.cache = cache
    app.state.tokens = tokens
    app.state.usecase = usecase
    app.state.scheduler = scheduler

    # ---------- middlewares / handlers ----------
    # add_middleware 后加的在外层：Context → AccessLog → Recovery → CORS → 路由

    if settings.CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["X-Trace-ID"],
        )
    app.add_middleware(RecoveryMiddleware)
    app.add_middleware(AccessLogMiddleware, max_body_bytes=settings.LOG_BODY_MAX_BYTES)
    app.add_middleware(ContextMiddleware, logger=api_logger(), timeout=settings.REQUEST_TIMEOUT_SECONDS)

    register_exception_handlers(app)

    app.include_router(
        build_router(
            usecase,
            tokens,
            cache,
            rate_limit_per_minute=settings.RATE_LIMIT_PER_MINUTE,
            api_keys=settings.API_KEYS,
        )
    )
    return app


def run() -> None:
    import uvicorn

    settings = Settings()
    uvicorn.run(
        "usercenter.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
