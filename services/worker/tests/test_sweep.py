from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tms_api.core.errors import PersistenceError
from tms_api.db.base import Base
from tms_api.models.enums import RoleType
from tms_api.models.person import Person
from tms_api.models.role import RoleAssignment
from tms_api.services.assignments import RoleAssignmentStore
from tms_api.services.directory import SqlActorDirectory
from tms_api.services.hierarchy import build_default_hierarchy
from tms_worker.main import run_sweep_once

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
TENANT = UUID("00000000-0000-0000-0000-0000000000a1")


@pytest.fixture
def session_factory() -> sessionmaker:
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)


def _seed(session_factory: sessionmaker, *expiries: datetime | None) -> None:
    hierarchy = build_default_hierarchy()
    with session_factory() as db:
        store = RoleAssignmentStore(db, hierarchy, SqlActorDirectory(db), clock=lambda: NOW)
        for expires_at in expiries:
            person = Person(tenant_id=TENANT, email=f"{uuid4().hex}@example.com", display_name="清理测试")
            db.add(person)
            db.flush()
            store.assign(person.id, TENANT, RoleType.EMPLOYEE, expires_at=expires_at)
        db.commit()


def test_run_sweep_once_commits_and_is_idempotent(session_factory: sessionmaker):
    _seed(session_factory, NOW - timedelta(days=2), NOW - timedelta(minutes=5), NOW + timedelta(days=1), None)
    hierarchy = build_default_hierarchy()

    assert run_sweep_once(session_factory, hierarchy, clock=lambda: NOW) == 2
    assert run_sweep_once(session_factory, hierarchy, clock=lambda: NOW) == 0

    with session_factory() as db:
        active = db.execute(select(RoleAssignment).where(RoleAssignment.is_active.is_(True))).scalars().all()
    assert len(active) == 2

    # 时间推进后，原本未过期的分配进入下一轮清理。
    later = NOW + timedelta(days=2)
    assert run_sweep_once(session_factory, hierarchy, clock=lambda: later) == 1


def test_run_sweep_once_rolls_back_on_failure(session_factory: sessionmaker):
    RoleAssignment.__table__.drop(bind=session_factory.kw["bind"])

    with pytest.raises(PersistenceError):
        run_sweep_once(session_factory, build_default_hierarchy(), clock=lambda: NOW)
