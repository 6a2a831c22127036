# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


EMAIL_PATTERN = r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$"


# ---------- requests ----------

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=20, examples=["john_doe"])
    password: str = Field(..., min_length=6, max_length=20, examples=["123456"])
    email: str = Field(..., max_length=64, pattern=EMAIL_PATTERN, examples=["john@example.com"])


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=20)
    password: str = Field(..., min_length=1, max_length=20)


class ListRequest(BaseModel):
    page: int = Field(1, ge=1, description="页码，默认 1")
    page_size: int = Field(10, ge=1, le=100, description="每页数量，默认 10，最大 100")
    username: Optional[str] = Field(None, max_length=20, description="用户名模糊筛选")
    email: Optional[str] = Field(None, max_length=64, description="邮箱模糊筛选")


class UpdateRequest(BaseModel):
    id: int = Field(..., ge=1)
    username: Optional[str] = Field(None, min_length=3, max_length=20)
    email: Optional[str] = Field(None, max_length=64, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(None, min_length=6, max_length=20)


class DeleteRequest(BaseModel):
    id: int = Field(..., ge=1)


# ---------- responses ----------

class UserOut(BaseModel):
    """对外的用户信息（不含密码）"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    role: str
    created_at: int
    updated_at: Optional[int] = None


class LoginResponse(BaseModel):
    token: str
    token_type: str = "Bearer"
    expires_in: int


class ListResponse(BaseModel):
    list: List[UserOut]
    page: int
    page_size: int
    total: int


class MessageResponse(BaseModel):
    message: str
