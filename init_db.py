# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

import argparse

from usercenter.application.auth.password import PasswordHasher
from usercenter.common.logging import setup_logging
from usercenter.domain import models
from usercenter.infra.config import settings
from usercenter.infra.db import build_engine, build_session_factory, create_tables
from usercenter.infra.user_repo import UserRepository
from usercenter.infra.ylogger import database_logger


def init_db(admin_username: str = "", admin_password: str = "", admin_email: str = "") -> None:
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    log = database_logger()

    engine = build_engine(settings)
    log.info("creating tables", url=engine.url.render_as_string(hide_password=True))
    create_tables(engine)

    if admin_username:
        repo = UserRepository(build_session_factory(engine))
        if repo.exists_by("username", admin_username):
            log.info("admin already exists", admin=admin_username)
        else:
            hasher = PasswordHasher(iterations=settings.PASSWORD_HASH_ITERATIONS)
            repo.create(
                models.User(
                    username=admin_username,
                    password_hash=hasher.hash(admin_password),
                    email=admin_email,
                    role="admin",
                )
            )
            log.info("admin created", admin=admin_username)

    engine.dispose()
    log.info("done")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="create tables and optionally an admin account")
    parser.add_argument("--admin-username", default="")
    parser.add_argument("--admin-password", default="")
    parser.add_argument("--admin-email", default="")
    args = parser.parse_args()
    init_db(args.admin_username, args.admin_password, args.admin_email)
