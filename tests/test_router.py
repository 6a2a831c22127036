# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

from typing import List, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel

from usercenter.common.codes import ErrorCode
from usercenter.common.context import RequestContext
from usercenter.common.errors import AppError, NotFoundError
from usercenter.common.exception_handlers import register_exception_handlers
from usercenter.common.middlewares import ContextMiddleware, RecoveryMiddleware, request_context
from usercenter.common.router import ElegantRouter, resolve_request_model


class EchoRequest(BaseModel):
    name: str
    tags: List[str] = []
    limit: Optional[int] = None


def tracing_middleware(label: str):
    async def middleware(request, call_next):
        ctx = request_context(request)
        seen, _ = ctx.get_field("chain", [])
        ctx.set_field("chain", [*seen, label])
        return await call_next(request)

    return middleware


def chain(ctx: RequestContext) -> List[str]:
    value, _ = ctx.get_field("chain", [])
    return value


def echo(ctx: RequestContext, req: EchoRequest) -> dict:
    return {"name": req.name, "tags": req.tags, "limit": req.limit}


async def async_echo(ctx: RequestContext, req: EchoRequest) -> dict:
    return {"name": req.name.upper()}


def nothing(ctx: RequestContext) -> None:
    return None


def not_found(ctx: RequestContext) -> None:
    raise NotFoundError("no such thing")


def runtime_failure(ctx: RequestContext) -> None:
    raise RuntimeError("boom")


def lookup_fault(ctx: RequestContext) -> None:
    return {}["missing"]


def build_client(router: ElegantRouter) -> TestClient:
    app = FastAPI()
    app.add_middleware(RecoveryMiddleware)
    app.add_middleware(ContextMiddleware)
    register_exception_handlers(app)
    app.include_router(router.api_router)
    return TestClient(app)


@pytest.fixture
def client() -> TestClient:
    root = ElegantRouter(middlewares=[tracing_middleware("global")])
    root.get("/chain-root", chain)

    group = root.group("/api", tracing_middleware("group"))
    group.get("/chain", chain, tracing_middleware("route"))
    group.get("/echo", echo)
    group.post("/echo", echo)
    group.put("/echo", echo)
    group.patch("/echo", async_echo)
    group.delete("/echo", echo)
    group.get("/nothing", nothing)
    group.get("/not-found", not_found)
    group.get("/runtime", runtime_failure)
    group.get("/fault", lookup_fault)
    return build_client(root)


def test_middlewares_run_global_then_group_then_route(client):
    body = client.get("/api/chain").json()
    assert body["data"] == ["global", "group", "route"]


def test_root_routes_only_see_global_middlewares(client):
    assert client.get("/chain-root").json()["data"] == ["global"]


def test_get_binds_query_parameters(client):
    body = client.get("/api/echo", params=[("name", "bob"), ("tags", "a"), ("tags", "b"), ("limit", "5")]).json()
    assert body == {"code": 0, "message": "success", "data": {"name": "bob", "tags": ["a", "b"], "limit": 5}}


def test_delete_binds_query_parameters(client):
    body = client.delete("/api/echo", params={"name": "gone"}).json()
    assert body["data"]["name"] == "gone"


def test_post_binds_json_body(client):
    body = client.post("/api/echo", json={"name": "bob", "tags": ["x"]}).json()
    assert body["data"] == {"name": "bob", "tags": ["x"], "limit": None}


def test_put_binds_form_body(client):
    body = client.put("/api/echo", data={"name": "formy", "limit": "3"}).json()
    assert body["data"] == {"name": "formy", "tags": [], "limit": 3}


def test_async_handler_is_awaited(client):
    body = client.patch("/api/echo", json={"name": "bob"}).json()
    assert body["data"] == {"name": "BOB"}


def test_bind_failure_stops_before_handler(client):
    body = client.post("/api/echo", json={"tags": ["x"]}).json()

    assert body["code"] == ErrorCode.PARAM_ERROR
    assert body["data"] is None
    assert "name" in body["detail"]


def test_none_result_yields_null_data(client):
    assert client.get("/api/nothing").json() == {"code": 0, "message": "success", "data": None}


def test_app_error_rendered_with_own_code(client):
    resp = client.get("/api/not-found")

    assert resp.status_code == 200
    assert resp.json() == {
        "code": int(ErrorCode.NOT_FOUND),
        "message": "resource not found",
        "data": None,
        "detail": "no such thing",
    }


def test_unrecognized_error_becomes_system_error_with_detail(client):
    resp = client.get("/api/runtime")

    assert resp.status_code == 200
    assert resp.json() == {"code": int(ErrorCode.SYSTEM_ERROR), "message": "system error", "data": None, "detail": "boom"}


def test_fault_is_recovered_as_http_500(client):
    resp = client.get("/api/fault")

    assert resp.status_code == 500
    assert resp.headers.get("X-Trace-ID")
    # 进程仍然可用
    assert client.get("/api/nothing").status_code == 200


def test_route_middleware_can_abort_with_app_error():
    async def deny(request, call_next):
        raise AppError(ErrorCode.FORBIDDEN, "nope")

    router = ElegantRouter()
    router.get("/guarded", nothing, deny)
    body = build_client(router).get("/guarded").json()

    assert body["code"] == ErrorCode.FORBIDDEN
    assert body["detail"] == "nope"


def test_use_only_affects_later_routes():
    router = ElegantRouter()
    router.get("/before", chain)
    router.use(tracing_middleware("late"))
    router.get("/after", chain)
    client = build_client(router)

    assert client.get("/before").json()["data"] == []
    assert client.get("/after").json()["data"] == ["late"]


def test_resolve_request_model():
    assert resolve_request_model(nothing) is None
    assert resolve_request_model(echo) is EchoRequest


def test_registering_unsupported_signature_fails_early():
    def too_many(ctx, a: EchoRequest, b: EchoRequest):
        return None

    def untyped(ctx, req):
        return None

    router = ElegantRouter()
    with pytest.raises(TypeError):
        router.get("/x", too_many)
    with pytest.raises(TypeError):
        router.get("/y", untyped)
