from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine, func, select, text
from sqlalchemy.orm import Session

from tms_api.core.errors import ActorNotFound, AssignmentNotAllowed, AssignmentNotFound, PersistenceError, UnknownRoleType
from tms_api.db.base import Base
from tms_api.models.enums import PersonStatus, RoleScope, RoleType
from tms_api.models.person import Person
from tms_api.models.role import CustomRole, CustomRolePermission, RoleAssignment, RolePermission
from tms_api.services.assignments import AdvancedGrant, RoleAssignmentStore, derive_scope, natural_key
from tms_api.services.directory import SqlActorDirectory
from tms_api.services.hierarchy import build_default_hierarchy

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
TENANT = UUID("00000000-0000-0000-0000-0000000000a1")
OTHER_TENANT = UUID("00000000-0000-0000-0000-0000000000a2")
COMPANY_1 = UUID("00000000-0000-0000-0000-0000000000c1")
COMPANY_2 = UUID("00000000-0000-0000-0000-0000000000c2")


@pytest.fixture
def db_session() -> Session:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture
def store(db_session: Session) -> RoleAssignmentStore:
    return RoleAssignmentStore(
        db_session,
        build_default_hierarchy(),
        SqlActorDirectory(db_session),
        clock=lambda: NOW,
    )


def _person(
    db: Session,
    tenant_id: UUID = TENANT,
    *,
    company_id: UUID | None = None,
    global_role: str | None = None,
    status: str = PersonStatus.ACTIVE,
) -> UUID:
    person = Person(
        tenant_id=tenant_id,
        company_id=company_id,
        global_role=global_role,
        email=f"{uuid4().hex}@example.com",
        display_name="测试人员",
        status=status,
    )
    db.add(person)
    db.flush()
    return person.id


def _row_count(db: Session, actor_id: UUID) -> int:
    return db.execute(select(func.count(RoleAssignment.id)).where(RoleAssignment.actor_id == actor_id)).scalar_one()


def test_derive_scope():
    assert derive_scope(RoleType.ADMIN, COMPANY_1, None) == (RoleScope.GLOBAL, None, None)
    assert derive_scope(RoleType.EMPLOYEE, COMPANY_1, None) == (RoleScope.COMPANY, COMPANY_1, None)
    department = uuid4()
    assert derive_scope(RoleType.EMPLOYEE, None, department) == (RoleScope.DEPARTMENT, None, department)
    assert derive_scope(RoleType.EMPLOYEE, None, None) == (RoleScope.TENANT, None, None)
    assert natural_key(TENANT, TENANT, "EMPLOYEE", None).endswith(":EMPLOYEE:-")


def test_assign_twice_keeps_single_row(db_session: Session, store: RoleAssignmentStore):
    actor = _person(db_session)
    first = store.assign(actor, TENANT, RoleType.EMPLOYEE, company_id=COMPANY_1)
    second = store.assign(actor, TENANT, "EMPLOYEE", company_id=COMPANY_1, is_primary=True)

    assert first.id == second.id
    assert second.is_primary is True
    assert second.scope == RoleScope.COMPANY
    assert _row_count(db_session, actor) == 1


def test_same_role_in_different_companies_is_two_assignments(db_session: Session, store: RoleAssignmentStore):
    actor = _person(db_session)
    store.assign(actor, TENANT, RoleType.EMPLOYEE, company_id=COMPANY_1)
    store.assign(actor, TENANT, RoleType.EMPLOYEE, company_id=COMPANY_2)

    assert _row_count(db_session, actor) == 2
    assert {view.company_id for view in store.list_roles(actor, TENANT)} == {COMPANY_1, COMPANY_2}


def test_assign_rejects_actor_outside_tenant(db_session: Session, store: RoleAssignmentStore):
    actor = _person(db_session, OTHER_TENANT)
    with pytest.raises(ActorNotFound):
        store.assign(actor, TENANT, RoleType.EMPLOYEE)
    with pytest.raises(ActorNotFound):
        store.assign(uuid4(), TENANT, RoleType.EMPLOYEE)

    inactive = _person(db_session, status=PersonStatus.INACTIVE)
    with pytest.raises(ActorNotFound):
        store.assign(inactive, TENANT, RoleType.EMPLOYEE)


def test_super_admin_may_hold_roles_in_any_tenant(db_session: Session, store: RoleAssignmentStore):
    actor = _person(db_session, OTHER_TENANT, global_role=RoleType.SUPER_ADMIN)
    view = store.assign(actor, TENANT, RoleType.TENANT_ADMIN)
    assert view.tenant_id == TENANT
    assert view.scope == RoleScope.TENANT


def test_assign_unknown_role_type(db_session: Session, store: RoleAssignmentStore):
    actor = _person(db_session)
    with pytest.raises(UnknownRoleType):
        store.assign(actor, TENANT, "JANITOR")
    assert _row_count(db_session, actor) == 0


def test_revoke_without_company_matches_every_company(db_session: Session, store: RoleAssignmentStore):
    actor = _person(db_session)
    store.assign(actor, TENANT, RoleType.EMPLOYEE, company_id=COMPANY_1)
    store.assign(actor, TENANT, RoleType.EMPLOYEE, company_id=COMPANY_2)
    store.assign(actor, TENANT, RoleType.TRAINER)

    assert store.revoke(actor, TENANT, RoleType.EMPLOYEE) is True
    assert [view.role_type for view in store.list_roles(actor, TENANT)] == ["TRAINER"]
    # 撤销只做软停用。
    assert _row_count(db_session, actor) == 3
    assert store.revoke(actor, TENANT, RoleType.EMPLOYEE) is False


def test_revoke_single_company(db_session: Session, store: RoleAssignmentStore):
    actor = _person(db_session)
    store.assign(actor, TENANT, RoleType.EMPLOYEE, company_id=COMPANY_1)
    store.assign(actor, TENANT, RoleType.EMPLOYEE, company_id=COMPANY_2)

    assert store.revoke(actor, TENANT, RoleType.EMPLOYEE, COMPANY_2) is True
    assert [view.company_id for view in store.list_roles(actor, TENANT)] == [COMPANY_1]


def test_reassign_reactivates_revoked_row(db_session: Session, store: RoleAssignmentStore):
    actor = _person(db_session)
    original = store.assign(actor, TENANT, RoleType.MANAGER)
    store.revoke(actor, TENANT, RoleType.MANAGER)
    assert store.list_roles(actor, TENANT) == []

    restored = store.assign(actor, TENANT, RoleType.MANAGER)
    assert restored.id == original.id
    assert [view.role_type for view in store.list_roles(actor, TENANT)] == ["MANAGER"]


def test_expired_assignment_is_not_listed(db_session: Session, store: RoleAssignmentStore):
    actor = _person(db_session)
    store.assign(actor, TENANT, RoleType.EMPLOYEE, expires_at=NOW - timedelta(minutes=1))
    store.assign(actor, TENANT, RoleType.TRAINER, expires_at=NOW + timedelta(days=1))

    assert [view.role_type for view in store.list_roles(actor, TENANT)] == ["TRAINER"]
    assert store.has_role(actor, RoleType.TRAINER, TENANT)
    assert not store.has_role(actor, RoleType.EMPLOYEE, TENANT)


def test_sweep_expired_is_idempotent(db_session: Session, store: RoleAssignmentStore):
    first = _person(db_session)
    second = _person(db_session)
    store.assign(first, TENANT, RoleType.EMPLOYEE, expires_at=NOW - timedelta(days=1))
    store.assign(second, TENANT, RoleType.TRAINER, expires_at=NOW - timedelta(hours=1))
    store.assign(second, TENANT, RoleType.VIEWER, expires_at=NOW + timedelta(days=1))
    store.assign(second, TENANT, RoleType.GUEST)

    assert store.sweep_expired() == 2
    assert store.sweep_expired() == 0
    inactive = db_session.execute(
        select(func.count(RoleAssignment.id)).where(RoleAssignment.is_active.is_(False))
    ).scalar_one()
    assert inactive == 2


def test_global_role_is_merged_once(db_session: Session, store: RoleAssignmentStore):
    actor = _person(db_session, global_role=RoleType.SUPER_ADMIN)
    store.assign(actor, TENANT, RoleType.TRAINER)

    views = store.list_roles(actor, TENANT)
    assert [view.role_type for view in views] == ["SUPER_ADMIN", "TRAINER"]
    assert views[0].synthetic is True
    assert views[0].id is None

    store.assign(actor, TENANT, RoleType.SUPER_ADMIN)
    views = store.list_roles(actor, TENANT)
    assert [view.role_type for view in views].count("SUPER_ADMIN") == 1
    assert not any(view.synthetic for view in views)


def test_unknown_global_role_is_ignored(db_session: Session, store: RoleAssignmentStore):
    actor = _person(db_session, global_role="LEGACY_OWNER")
    assert store.list_roles(actor, TENANT) == []


def test_primary_role_and_highest_role(db_session: Session, store: RoleAssignmentStore):
    actor = _person(db_session)
    assert store.primary_role_of(actor, TENANT) is None
    assert store.highest_role_type(actor, TENANT) is None

    store.assign(actor, TENANT, RoleType.TRAINER)
    store.assign(actor, TENANT, RoleType.COMPANY_ADMIN, company_id=COMPANY_1)
    store.assign(actor, TENANT, RoleType.EMPLOYEE)

    assert store.primary_role_of(actor, TENANT).role_type == RoleType.COMPANY_ADMIN
    assert store.highest_role_type(actor, TENANT) == RoleType.COMPANY_ADMIN
    assert store.role_types_of(actor, TENANT) == ["COMPANY_ADMIN", "EMPLOYEE", "TRAINER"]


def test_list_by_role_and_company(db_session: Session, store: RoleAssignmentStore):
    alice = _person(db_session)
    bob = _person(db_session)
    store.assign(alice, TENANT, RoleType.TRAINER, company_id=COMPANY_1)
    store.assign(bob, TENANT, RoleType.TRAINER, company_id=COMPANY_2)
    store.assign(bob, TENANT, RoleType.EMPLOYEE, company_id=COMPANY_1)

    assert {view.actor_id for view in store.list_by_role(RoleType.TRAINER, TENANT)} == {alice, bob}
    assert [view.actor_id for view in store.list_by_role(RoleType.TRAINER, TENANT, COMPANY_1)] == [alice]
    assert store.list_by_role(RoleType.TRAINER, OTHER_TENANT) == []

    in_company = store.list_company_assignments(TENANT, COMPANY_1)
    assert {(view.actor_id, view.role_type) for view in in_company} == {(alice, "TRAINER"), (bob, "EMPLOYEE")}


def test_assign_with_authority(db_session: Session, store: RoleAssignmentStore):
    admin = _person(db_session)
    employee = _person(db_session)
    target = _person(db_session)
    store.assign(admin, TENANT, RoleType.TENANT_ADMIN)
    store.assign(employee, TENANT, RoleType.EMPLOYEE)

    view = store.assign_with_authority(admin, target, TENANT, RoleType.COMPANY_ADMIN, company_id=COMPANY_1)
    assert view.assigned_by == admin
    assert view.company_id == COMPANY_1

    with pytest.raises(AssignmentNotAllowed):
        store.assign_with_authority(employee, target, TENANT, RoleType.COMPANY_ADMIN)
    # 只能分配直接可分配的角色，间接下属不算。
    with pytest.raises(AssignmentNotAllowed):
        store.assign_with_authority(admin, target, TENANT, RoleType.TRAINER_COORDINATOR)
    with pytest.raises(AssignmentNotAllowed):
        store.assign_with_authority(uuid4(), target, TENANT, RoleType.EMPLOYEE)


def test_custom_permissions_on_assign(db_session: Session, store: RoleAssignmentStore):
    actor = _person(db_session)
    store.assign(actor, TENANT, RoleType.EMPLOYEE, custom_permissions=["export_reports", " VIEW_USERS "])
    assert store.explicit_grants(actor, TENANT) == {"EXPORT_REPORTS", "VIEW_USERS"}
    assert store.explicit_grants(actor, OTHER_TENANT) == set()


def test_set_role_permissions_replaces_grants(db_session: Session, store: RoleAssignmentStore):
    actor = _person(db_session)
    view = store.assign(actor, TENANT, RoleType.EMPLOYEE, custom_permissions=["EXPORT_REPORTS", "VIEW_USERS"])

    assert store.set_role_permissions(view.id, ["VIEW_USERS", "EDIT_USERS"]) == ["EDIT_USERS", "VIEW_USERS"]
    assert store.explicit_grants(actor, TENANT) == {"VIEW_USERS", "EDIT_USERS"}
    # 被移除的权限点保留记录但不再生效。
    retained = db_session.execute(
        select(RolePermission.is_granted).where(RolePermission.permission == "EXPORT_REPORTS")
    ).scalar_one()
    assert retained is False

    store.set_role_permissions(view.id, [])
    assert store.explicit_grants(actor, TENANT) == set()

    with pytest.raises(AssignmentNotFound):
        store.set_role_permissions(uuid4(), ["VIEW_USERS"])


def test_set_advanced_permissions_normalizes_names(db_session: Session, store: RoleAssignmentStore):
    actor = _person(db_session)
    view = store.assign(actor, TENANT, RoleType.EMPLOYEE)
    store.set_advanced_permissions(
        view.id,
        [AdvancedGrant(resource="Employees", action="View", scope="company", allowed_fields=("name", "name"))],
    )

    grants = store.advanced_grants(actor, "employees", "view", TENANT)
    assert len(grants) == 1
    assert grants[0].allowed_fields == ("name",)
    assert grants[0].code.code == "VIEW_EMPLOYEES"
    assert store.advanced_grants(actor, "employees", "edit", TENANT) == []

    store.set_advanced_permissions(view.id, [])
    assert store.advanced_grants(actor) == []


def test_update_assignment_permissions_requires_authority(db_session: Session, store: RoleAssignmentStore):
    manager = _person(db_session)
    employee = _person(db_session)
    store.assign(manager, TENANT, RoleType.COMPANY_ADMIN, company_id=COMPANY_1)
    employee_view = store.assign(employee, TENANT, RoleType.EMPLOYEE)
    manager_view = store.list_roles(manager, TENANT)[0]

    store.update_assignment_permissions_as(manager, employee_view.id, permissions=["VIEW_REPORTS"])
    assert store.explicit_grants(employee, TENANT) == {"VIEW_REPORTS"}

    with pytest.raises(AssignmentNotAllowed):
        store.update_assignment_permissions_as(employee, manager_view.id, permissions=["DELETE_USERS"])
    with pytest.raises(AssignmentNotFound):
        store.update_assignment_permissions_as(manager, uuid4(), permissions=[])


def test_custom_role_permissions(db_session: Session, store: RoleAssignmentStore):
    actor = _person(db_session)
    custom_role = CustomRole(tenant_id=TENANT, name="报表专员")
    db_session.add(custom_role)
    db_session.flush()
    db_session.add_all(
        [
            CustomRolePermission(custom_role_id=custom_role.id, permission="EXPORT_REPORTS"),
            CustomRolePermission(custom_role_id=custom_role.id, permission="VIEW_ANALYTICS"),
        ]
    )
    store.assign(actor, TENANT, RoleType.EMPLOYEE, custom_role_id=custom_role.id)

    assert store.custom_role_permissions(actor, TENANT) == {"EXPORT_REPORTS", "VIEW_ANALYTICS"}

    custom_role.deleted_at = NOW
    db_session.flush()
    assert store.custom_role_permissions(actor, TENANT) == set()


def test_global_scope_assignment_is_visible_in_every_tenant(db_session: Session, store: RoleAssignmentStore):
    actor = _person(db_session)
    custom_role = CustomRole(tenant_id=TENANT, name="平台审计")
    db_session.add(custom_role)
    db_session.flush()
    db_session.add(CustomRolePermission(custom_role_id=custom_role.id, permission="EXPORT_REPORTS"))
    admin_view = store.assign(actor, TENANT, RoleType.ADMIN, custom_role_id=custom_role.id)
    store.assign(actor, TENANT, RoleType.TRAINER)
    assert admin_view.scope == RoleScope.GLOBAL

    # 租户范围的 TRAINER 不跨租户，全局范围的 ADMIN 跨租户生效。
    assert store.role_types_of(actor, OTHER_TENANT) == ["ADMIN"]
    assert store.primary_role_of(actor, OTHER_TENANT).id == admin_view.id
    assert store.has_role(actor, RoleType.ADMIN, OTHER_TENANT)
    assert store.custom_role_permissions(actor, OTHER_TENANT) == {"EXPORT_REPORTS"}
    assert store.role_types_of(actor, TENANT) == ["ADMIN", "TRAINER"]


def test_database_failure_is_wrapped(db_session: Session, store: RoleAssignmentStore):
    actor = _person(db_session)
    db_session.execute(text("DROP TABLE role_assignments"))
    with pytest.raises(PersistenceError) as exc_info:
        store.list_roles(actor, TENANT)
    assert exc_info.value.operation == "list_roles"


def test_directory_failure_is_wrapped(db_session: Session):
    actor = _person(db_session)
    db_session.execute(text("DROP TABLE persons"))
    with pytest.raises(PersistenceError) as exc_info:
        SqlActorDirectory(db_session).company_of(actor)
    assert exc_info.value.operation == "actor_lookup"
