"""数据库会话。

API 与过期清理进程共用 build_session_factory；API 侧工厂在首个请求时创建。
"""

from collections.abc import Generator
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from tms_api.core.config import get_settings


def build_session_factory(database_url: str) -> sessionmaker:
    """按连接串构造会话工厂；写路径只 flush，由调用方提交。"""
    engine = create_engine(database_url, future=True, pool_pre_ping=True)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)


@lru_cache
def get_session_factory() -> sessionmaker:
    return build_session_factory(get_settings().database_url)


def get_db() -> Generator[Session, None, None]:
    """每个请求一个会话，路由负责 commit。"""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()
