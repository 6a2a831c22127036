# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

"""请求参数绑定

按请求方法和 Content-Type 选择解码方式，再交给 pydantic 模型校验：

- GET / DELETE：query string
- POST / PUT / PATCH：json → JSON body；urlencoded / multipart → 表单；其他 → JSON
- 其他方法：JSON
"""

from __future__ import annotations

import typing
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from usercenter.common.errors import ParamError


T = TypeVar("T", bound=BaseModel)

DECODE_QUERY = "query"
DECODE_JSON = "json"
DECODE_FORM = "form"

_QUERY_METHODS = frozenset({"GET", "DELETE"})
_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
_SEQUENCE_TYPES = (list, tuple, set, frozenset)


def resolve_decoder(method: str, content_type: Optional[str]) -> str:
    method = (method or "").upper()
    if method in _QUERY_METHODS:
        return DECODE_QUERY
    if method in _BODY_METHODS:
        ct = (content_type or "").lower()
        if "application/json" in ct:
            return DECODE_JSON
        if "application/x-www-form-urlencoded" in ct or "multipart/form-data" in ct:
            return DECODE_FORM
    return DECODE_JSON


def _is_sequence(annotation: Any) -> bool:
    origin = typing.get_origin(annotation)
    if origin in _SEQUENCE_TYPES:
        return True
    if origin is not None:
        # Optional[List[str]] 之类
        return any(_is_sequence(arg) for arg in typing.get_args(annotation) if arg is not type(None))
    return annotation in _SEQUENCE_TYPES


def _sequence_keys(model: Type[BaseModel]) -> FrozenSet[str]:
    keys = set()
    for name, field in model.model_fields.items():
        if _is_sequence(field.annotation):
            keys.add(name)
            if field.alias:
                keys.add(field.alias)
    return frozenset(keys)


def _collapse(items: Iterable[Tuple[str, Any]], sequence_keys: FrozenSet[str]) -> Dict[str, Any]:
    """多值参数：声明为列表的字段保留列表，其余取第一个值"""
    grouped: Dict[str, List[Any]] = {}
    for key, value in items:
        grouped.setdefault(key, []).append(value)
    return {k: (v if k in sequence_keys else v[0]) for k, v in grouped.items()}


def describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "body"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


async def bind_request(request: Request, model: Type[T]) -> T:
    """把请求解码为 model 实例，失败统一抛 ParamError(detail=原因)"""
    decoder = resolve_decoder(request.method, request.headers.get("content-type"))
    try:
        if decoder == DECODE_QUERY:
            data = _collapse(request.query_params.multi_items(), _sequence_keys(model))
            return model.model_validate(data)

        if decoder == DECODE_FORM:
            async with request.form() as form:
                data = _collapse(form.multi_items(), _sequence_keys(model))
            return model.model_validate(data)

        body = await request.body()
        # 空 body 按空对象处理，由模型决定缺失字段是否合法
        return model.model_validate_json(body if body.strip() else b"{}")
    except ValidationError as exc:
        raise ParamError(describe_validation_error(exc)) from exc
    except StarletteHTTPException as exc:
        # 表单解析失败（如 multipart 边界错误）
        raise ParamError(str(exc.detail)) from exc
