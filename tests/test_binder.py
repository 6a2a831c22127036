# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

import asyncio
from typing import List, Optional
from urllib.parse import urlencode

import pytest
from pydantic import BaseModel, Field
from starlette.requests import Request

from usercenter.common.binder import DECODE_FORM, DECODE_JSON, DECODE_QUERY, bind_request, resolve_decoder
from usercenter.common.codes import ErrorCode
from usercenter.common.errors import ParamError


class Query(BaseModel):
    page: int = Field(1, ge=1)
    ids: List[int] = []
    keyword: Optional[str] = None


def make_request(method: str, body: bytes = b"", content_type: Optional[str] = None, query: str = "") -> Request:
    headers = []
    if content_type:
        headers.append((b"content-type", content_type.encode("latin-1")))
    scope = {
        "type": "http",
        "method": method,
        "path": "/",
        "query_string": query.encode("latin-1"),
        "headers": headers,
    }

    async def receive():
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)


def bind(request: Request, model=Query):
    return asyncio.run(bind_request(request, model))


@pytest.mark.parametrize(
    "method,content_type,expected",
    [
        ("GET", None, DECODE_QUERY),
        ("GET", "application/json", DECODE_QUERY),
        ("DELETE", "application/x-www-form-urlencoded", DECODE_QUERY),
        ("POST", "application/json", DECODE_JSON),
        ("PUT", "application/json; charset=utf-8", DECODE_JSON),
        ("PATCH", "Application/JSON", DECODE_JSON),
        ("POST", "application/x-www-form-urlencoded", DECODE_FORM),
        ("PUT", "multipart/form-data; boundary=xyz", DECODE_FORM),
        ("POST", "text/plain", DECODE_JSON),
        ("POST", None, DECODE_JSON),
        ("OPTIONS", "application/x-www-form-urlencoded", DECODE_JSON),
        ("HEAD", None, DECODE_JSON),
    ],
)
def test_resolve_decoder(method, content_type, expected):
    assert resolve_decoder(method, content_type) == expected


def test_query_decode_with_repeated_keys():
    req = make_request("GET", query=urlencode([("page", "2"), ("ids", "1"), ("ids", "2"), ("keyword", "bob")]))

    result = bind(req)

    assert result == Query(page=2, ids=[1, 2], keyword="bob")


def test_query_decode_ignores_body():
    req = make_request("DELETE", body=b'{"page": 9}', content_type="application/json", query="page=3")
    assert bind(req).page == 3


def test_json_decode():
    req = make_request("POST", body=b'{"page": 4, "ids": [7]}', content_type="application/json")
    assert bind(req) == Query(page=4, ids=[7])


def test_form_decode():
    body = urlencode([("page", "5"), ("ids", "8"), ("ids", "9")]).encode()
    req = make_request("PATCH", body=body, content_type="application/x-www-form-urlencoded")

    assert bind(req) == Query(page=5, ids=[8, 9])


def test_multipart_form_decode_closes_uploads():
    body = (
        b"--xyz\r\n"
        b'Content-Disposition: form-data; name="keyword"\r\n\r\n'
        b"hello\r\n"
        b"--xyz\r\n"
        b'Content-Disposition: form-data; name="attachment"; filename="a.txt"\r\n'
        b"Content-Type: text/plain\r\n\r\n"
        b"payload\r\n"
        b"--xyz--\r\n"
    )
    req = make_request("POST", body=body, content_type="multipart/form-data; boundary=xyz")

    assert bind(req).keyword == "hello"
    # 解析出的临时文件在绑定结束后已关闭
    upload = req._form["attachment"]
    assert upload.file.closed


def test_unknown_content_type_falls_back_to_json():
    req = make_request("POST", body=b'{"keyword": "x"}', content_type="text/plain")
    assert bind(req).keyword == "x"


def test_empty_body_uses_model_defaults():
    req = make_request("POST", content_type="application/json")
    assert bind(req) == Query()


def test_invalid_json_is_param_error():
    req = make_request("POST", body=b"{oops", content_type="application/json")

    with pytest.raises(ParamError) as exc_info:
        bind(req)

    assert exc_info.value.code == ErrorCode.PARAM_ERROR
    assert exc_info.value.detail


def test_validation_failure_names_the_field():
    req = make_request("GET", query="page=0")

    with pytest.raises(ParamError) as exc_info:
        bind(req)

    assert exc_info.value.detail.startswith("page:")


def test_wrong_type_in_query_is_param_error():
    req = make_request("GET", query="ids=abc")

    with pytest.raises(ParamError):
        bind(req)
