# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Tuple

import pytest
from fastapi.testclient import TestClient

from usercenter.common.logging import StructuredLogger
from usercenter.infra.cache import InMemoryCache
from usercenter.infra.config import Settings
from usercenter.main import create_app


class CapturingLogger(StructuredLogger):
    """记录每次 log 调用，便于断言字段顺序"""

    def __init__(self) -> None:
        super().__init__(logging.getLogger("usercenter.tests"))
        self.records: List[Tuple[int, str, List[Tuple[str, Any]]]] = []

    def is_enabled_for(self, level: int) -> bool:
        return True

    def log(self, level: int, message: str, fields=()) -> None:
        self.records.append((level, message, list(fields)))


@pytest.fixture
def capturing_logger() -> CapturingLogger:
    return CapturingLogger()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite://",
        AUTO_CREATE_TABLES=True,
        REDIS_URL=None,
        PASSWORD_HASH_ITERATIONS=1000,
        JWT_SECRET_KEY="test-secret",
        LOGIN_MAX_FAILS=3,
        RATE_LIMIT_PER_MINUTE=3,
        API_KEYS=["test-api-key"],
        SCHEDULER_ENABLED=False,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def app(settings: Settings):
    return create_app(settings, cache=InMemoryCache())


@pytest.fixture
def client(app) -> Iterator[TestClient]:
    with TestClient(app) as c:
        yield c


class UserApi:
    """端到端测试用的小工具"""

    def __init__(self, client: TestClient) -> None:
        self.client = client

    def register(self, username: str, password: str = "secret123", email: str = "") -> Dict[str, Any]:
        resp = self.client.post(
            "/api/v1/user/register",
            json={"username": username, "password": password, "email": email or f"{username}@example.com"},
        )
        assert resp.status_code == 200
        return resp.json()

    def login(self, username: str, password: str = "secret123") -> str:
        body = self.client.post("/api/v1/user/login", json={"username": username, "password": password}).json()
        assert body["code"] == 0, body
        return body["data"]["token"]

    def signup(self, username: str, password: str = "secret123") -> Dict[str, str]:
        """注册并登录，返回鉴权头"""
        self.register(username, password)
        return self.auth_header(self.login(username, password))

    @staticmethod
    def auth_header(token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def api(client: TestClient) -> UserApi:
    return UserApi(client)
