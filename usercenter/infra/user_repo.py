# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from usercenter.common.codes import ErrorCode
from usercenter.common.errors import DBError
from usercenter.domain import models
from usercenter.infra.ylogger import database_logger


_UNIQUE_FIELDS = frozenset({"id", "username", "email"})


class UserRepository:
    """用户表访问

    - 每个方法自带一个短事务；需要多步原子操作时用 transaction() 拿 Session
    - IntegrityError 原样抛出，由业务层翻译成“已存在”类错误
    - 其余数据库异常包装成 DBError（连接失败单独一个码）
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._sessions = session_factory
        self._log = database_logger()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        db = self._sessions()
        try:
            yield db
            db.commit()
        except IntegrityError:
            db.rollback()
            raise
        except OperationalError as e:
            db.rollback()
            self._log.error("database unavailable", error=str(e.orig))
            raise DBError(str(e.orig), code=ErrorCode.CONNECTION_FAILED) from e
        except SQLAlchemyError as e:
            db.rollback()
            self._log.error("database error", error=str(e))
            raise DBError(str(e)) from e
        except BaseException:
            db.rollback()
            raise
        finally:
            db.close()

    def get(self, user_id: int) -> Optional[models.User]:
        with self.transaction() as db:
            return db.get(models.User, user_id)

    def find_one(self, **conditions: Any) -> Optional[models.User]:
        with self.transaction() as db:
            stmt = select(models.User).filter_by(**conditions).order_by(models.User.id.desc()).limit(1)
            return db.scalars(stmt).first()

    def exists_by(self, field: str, value: Any) -> bool:
        if field not in _UNIQUE_FIELDS:
            raise ValueError(f"unsupported lookup field: {field}")
        return self.count(**{field: value}) > 0

    def count(self, **conditions: Any) -> int:
        with self.transaction() as db:
            stmt = select(func.count()).select_from(models.User).filter_by(**conditions)
            return int(db.scalar(stmt) or 0)

    def create(self, user: models.User) -> models.User:
        with self.transaction() as db:
            db.add(user)
            db.flush()
            db.refresh(user)
        return user

    def update(self, user_id: int, values: Dict[str, Any]) -> bool:
        """返回是否命中记录；values 为空时只校验存在性"""
        with self.transaction() as db:
            user = db.get(models.User, user_id)
            if user is None:
                return False
            for key, value in values.items():
                setattr(user, key, value)
        return True

    def delete(self, user_id: int) -> bool:
        with self.transaction() as db:
            user = db.get(models.User, user_id)
            if user is None:
                return False
            db.delete(user)
        return True

    def list(
        self,
        *,
        page: int,
        page_size: int,
        username: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Tuple[List[models.User], int]:
        filters = []
        if username:
            filters.append(models.User.username.contains(username, autoescape=True))
        if email:
            filters.append(models.User.email.contains(email, autoescape=True))

        with self.transaction() as db:
            total = db.scalar(select(func.count()).select_from(models.User).where(*filters)) or 0
            stmt = (
                select(models.User)
                .where(*filters)
                .order_by(models.User.id.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            rows = list(db.scalars(stmt).all())
        return rows, int(total)
