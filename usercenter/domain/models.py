# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

import time
from typing import Optional

from sqlalchemy import BigInteger, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from usercenter.infra.db import Base


def _ts() -> int:
    return int(time.time())


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False, doc="不对外返回")
    email: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user", doc="user / admin")

    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=_ts)
    updated_at: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
        default=_ts,
        onupdate=_ts,
    )

    def __repr__(self) -> str:
        return f"User(id={self.id!r}, username={self.username!r})"
