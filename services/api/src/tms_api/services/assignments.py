"""角色分配存储。

职责：
1. 分配（按自然键原子 upsert）、撤销（批量软停用）、过期清理（批量条件更新）。
2. 查询人员当前有效的角色分配，并与人员的全局角色属性做显式合并。
3. 维护挂在分配上的显式权限点与高级权限。

约束：
1. 所有写操作都使用数据库原子语句，不做“先读后写”的判重。
2. 本层只 flush，不提交事务，提交时机由调用方（路由或 worker）决定。
3. 所有数据库异常记录日志后统一包装为 PersistenceError。
"""

from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from tms_api.core.errors import (
    ActorNotFound,
    AssignmentNotAllowed,
    AssignmentNotFound,
    PersistenceError,
)
from tms_api.models.enums import PermissionScope, RoleScope, RoleType
from tms_api.models.role import (
    AdvancedPermission,
    CustomRole,
    CustomRolePermission,
    RoleAssignment,
    RolePermission,
)
from tms_api.services.directory import ActorDirectory
from tms_api.services.hierarchy import HierarchyIndex
from tms_api.services.permission_codes import PermissionCode, normalize_permission

logger = logging.getLogger("tms_api.assignments")

# 平台级角色不受租户/公司范围约束。
GLOBAL_SCOPE_ROLE_TYPES = frozenset({RoleType.SUPER_ADMIN, RoleType.ADMIN})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def derive_scope(
    role_type: str,
    company_id: UUID | None,
    department_id: UUID | None,
) -> tuple[RoleScope, UUID | None, UUID | None]:
    """根据角色与范围参数推导分配范围，返回 (scope, company_id, department_id)。"""
    if role_type in GLOBAL_SCOPE_ROLE_TYPES:
        return RoleScope.GLOBAL, None, None
    if company_id is not None:
        return RoleScope.COMPANY, company_id, department_id
    if department_id is not None:
        return RoleScope.DEPARTMENT, None, department_id
    return RoleScope.TENANT, None, None


def natural_key(actor_id: UUID, tenant_id: UUID, role_type: str, company_id: UUID | None) -> str:
    """构造分配自然键。

    公司 ID 可为空，组合唯一约束对 NULL 不生效，因此落成单列字符串再加唯一约束。
    """
    return f"{actor_id}:{tenant_id}:{role_type}:{company_id or '-'}"


@dataclass(frozen=True)
class AssignmentView:
    """对外暴露的角色分配快照。

    synthetic=True 表示由人员全局角色属性合成，数据库中没有对应行。
    """

    id: UUID | None
    actor_id: UUID
    tenant_id: UUID | None
    role_type: str
    scope: str
    company_id: UUID | None = None
    department_id: UUID | None = None
    custom_role_id: UUID | None = None
    assigned_by: UUID | None = None
    assigned_at: datetime | None = None
    valid_until: datetime | None = None
    is_primary: bool = False
    synthetic: bool = False

    @classmethod
    def from_row(cls, row: RoleAssignment) -> "AssignmentView":
        return cls(
            id=row.id,
            actor_id=row.actor_id,
            tenant_id=row.tenant_id,
            role_type=row.role_type,
            scope=row.scope,
            company_id=row.company_id,
            department_id=row.department_id,
            custom_role_id=row.custom_role_id,
            assigned_by=row.assigned_by,
            assigned_at=row.assigned_at,
            valid_until=row.valid_until,
            is_primary=row.is_primary,
        )


@dataclass(frozen=True)
class AdvancedGrant:
    """高级权限（字段级 + 条件）快照，也用作写入参数。"""

    resource: str
    action: str
    scope: str = PermissionScope.GLOBAL
    allowed_fields: tuple[str, ...] = ()
    conditions: Mapping[str, Any] | None = None
    assignment_id: UUID | None = field(default=None, compare=False)

    @property
    def code(self) -> PermissionCode:
        """派生的 ACTION_RESOURCE 权限点。"""
        return PermissionCode.from_parts(self.action, self.resource)

    @classmethod
    def from_row(cls, row: AdvancedPermission) -> "AdvancedGrant":
        return cls(
            resource=row.resource,
            action=row.action,
            scope=row.scope,
            allowed_fields=tuple(row.allowed_fields or ()),
            conditions=row.conditions or None,
            assignment_id=row.assignment_id,
        )


def _normalize_name(value: str) -> str:
    return value.strip().lower()


class RoleAssignmentStore:
    """角色分配与权限授予的持久化入口。"""

    def __init__(
        self,
        db: Session,
        hierarchy: HierarchyIndex,
        directory: ActorDirectory,
        clock: Callable[[], datetime] | None = None,
    ):
        self.db = db
        self.hierarchy = hierarchy
        self.directory = directory
        self._clock = clock or utc_now

    def now(self) -> datetime:
        return self._clock()

    @contextmanager
    def _persistence(self, operation: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.exception("role store operation failed operation=%s", operation)
            raise PersistenceError(operation) from exc

    def _active_filter(self, now: datetime):
        """有效分配：未停用，且未设置过期时间或过期时间在未来。"""
        return and_(
            RoleAssignment.is_active.is_(True),
            or_(RoleAssignment.valid_until.is_(None), RoleAssignment.valid_until > now),
        )

    @staticmethod
    def _tenant_filter(tenant_id: UUID):
        """租户内分配，加上在所有租户生效的全局范围分配。"""
        return or_(RoleAssignment.tenant_id == tenant_id, RoleAssignment.scope == RoleScope.GLOBAL)

    # ---- 分配 / 撤销 ----

    def assign(
        self,
        actor_id: UUID,
        tenant_id: UUID,
        role_type: str,
        *,
        company_id: UUID | None = None,
        department_id: UUID | None = None,
        assigned_by: UUID | None = None,
        expires_at: datetime | None = None,
        custom_permissions: Iterable[str] | None = None,
        custom_role_id: UUID | None = None,
        is_primary: bool = False,
    ) -> AssignmentView:
        """为人员分配角色；同一自然键重复分配只刷新，不会产生第二行。"""
        role = self.hierarchy.definition_of(role_type).role_type
        with self._persistence("assign"):
            # 超级管理员可跨租户持有角色。
            if not self.directory.belongs_to_tenant(actor_id, tenant_id):
                if self.directory.global_role_of(actor_id) != RoleType.SUPER_ADMIN:
                    raise ActorNotFound(actor_id, tenant_id)

            scope, company_id, department_id = derive_scope(role, company_id, department_id)
            values = {
                "id": uuid4(),
                "actor_id": actor_id,
                "tenant_id": tenant_id,
                "role_type": role.value,
                "scope": scope.value,
                "company_id": company_id,
                "department_id": department_id,
                "custom_role_id": custom_role_id,
                "assigned_by": assigned_by,
                "assigned_at": self.now(),
                "valid_until": expires_at,
                "is_active": True,
                "is_primary": is_primary,
                "natural_key": natural_key(actor_id, tenant_id, role.value, company_id),
            }
            assignment_id = self._upsert_assignment(values)
            if custom_permissions:
                self._grant_role_permissions(assignment_id, custom_permissions)
            self.db.flush()
            row = self.db.get(RoleAssignment, assignment_id, populate_existing=True)

        logger.info(
            "role assigned actor_id=%s tenant_id=%s role=%s scope=%s company_id=%s",
            actor_id,
            tenant_id,
            role.value,
            scope.value,
            company_id,
        )
        return AssignmentView.from_row(row)

    def _upsert_assignment(self, values: dict[str, Any]) -> UUID:
        """按自然键原子 upsert，返回分配 ID。"""
        refreshed = {
            "assigned_by": values["assigned_by"],
            "assigned_at": values["assigned_at"],
            "valid_until": values["valid_until"],
            "scope": values["scope"],
            "department_id": values["department_id"],
            "custom_role_id": values["custom_role_id"],
            "is_primary": values["is_primary"],
            "is_active": True,
        }
        dialect = self.db.get_bind().dialect.name
        if dialect in {"postgresql", "sqlite"}:
            insert_factory = pg_insert if dialect == "postgresql" else sqlite_insert
            stmt = insert_factory(RoleAssignment).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[RoleAssignment.natural_key],
                set_={**refreshed, "updated_at": func.now()},
            ).returning(RoleAssignment.id)
            return self.db.execute(stmt).scalar_one()

        existing_stmt = select(RoleAssignment).where(RoleAssignment.natural_key == values["natural_key"])
        existing = self.db.execute(existing_stmt).scalar_one_or_none()
        if existing is None:
            try:
                with self.db.begin_nested():
                    row = RoleAssignment(**values)
                    self.db.add(row)
                    self.db.flush([row])
                return row.id
            except IntegrityError:
                # 并发插入了同一自然键，回退为更新。
                existing = self.db.execute(existing_stmt).scalar_one()
        for key, value in refreshed.items():
            setattr(existing, key, value)
        self.db.flush([existing])
        return existing.id

    def assign_with_authority(
        self,
        grantor_id: UUID,
        actor_id: UUID,
        tenant_id: UUID,
        role_type: str,
        **options: Any,
    ) -> AssignmentView:
        """以分配人身份分配角色，分配人的最高角色必须能直接分配目标角色。"""
        target = self.hierarchy.definition_of(role_type).role_type
        grantor_role = self.highest_role_type(grantor_id, tenant_id)
        if grantor_role is None or not self.hierarchy.is_assignable(grantor_role, target):
            logger.warning(
                "role assignment rejected grantor_id=%s grantor_role=%s target=%s",
                grantor_id,
                grantor_role,
                target.value,
            )
            raise AssignmentNotAllowed(target.value, grantor_role)
        options["assigned_by"] = grantor_id
        return self.assign(actor_id, tenant_id, target, **options)

    def revoke(
        self,
        actor_id: UUID,
        tenant_id: UUID,
        role_type: str,
        company_id: UUID | None = None,
    ) -> bool:
        """软停用匹配的分配；company_id 为空时匹配全部公司。返回是否有行被修改。"""
        role = self.hierarchy.definition_of(role_type).role_type
        stmt = (
            update(RoleAssignment)
            .where(RoleAssignment.actor_id == actor_id)
            .where(RoleAssignment.tenant_id == tenant_id)
            .where(RoleAssignment.role_type == role.value)
            .where(RoleAssignment.is_active.is_(True))
        )
        if company_id is not None:
            stmt = stmt.where(RoleAssignment.company_id == company_id)
        stmt = stmt.values(is_active=False, updated_at=self.now()).execution_options(synchronize_session=False)
        with self._persistence("revoke"):
            changed = self.db.execute(stmt).rowcount
        logger.info(
            "role revoked actor_id=%s tenant_id=%s role=%s company_id=%s rows=%s",
            actor_id,
            tenant_id,
            role.value,
            company_id,
            changed,
        )
        return changed > 0

    def sweep_expired(self) -> int:
        """停用全部已过期但仍有效的分配，返回本次停用行数。"""
        now = self.now()
        stmt = (
            update(RoleAssignment)
            .where(RoleAssignment.is_active.is_(True))
            .where(RoleAssignment.valid_until.is_not(None))
            .where(RoleAssignment.valid_until <= now)
            .values(is_active=False, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        with self._persistence("sweep_expired"):
            swept = self.db.execute(stmt).rowcount
        if swept:
            logger.info("expired role assignments deactivated count=%s", swept)
        return swept

    # ---- 查询 ----

    def list_roles(self, actor_id: UUID, tenant_id: UUID | None = None) -> list[AssignmentView]:
        """返回人员当前有效的分配，并合并人员的全局角色属性。"""
        stmt = select(RoleAssignment).where(RoleAssignment.actor_id == actor_id).where(self._active_filter(self.now()))
        if tenant_id is not None:
            stmt = stmt.where(self._tenant_filter(tenant_id))
        stmt = stmt.order_by(RoleAssignment.role_type.asc(), RoleAssignment.assigned_at.desc())
        with self._persistence("list_roles"):
            rows = self.db.execute(stmt).scalars().all()
            global_role = self.directory.global_role_of(actor_id)

        assigned = [AssignmentView.from_row(row) for row in rows]
        return self._merge_global_role(actor_id, assigned, global_role)

    def _merge_global_role(
        self,
        actor_id: UUID,
        assigned: list[AssignmentView],
        global_role: str | None,
    ) -> list[AssignmentView]:
        """合并两类来源：租户内分配 + 人员全局角色属性。同一角色类型只保留一条。"""
        if not global_role:
            return assigned
        if not self.hierarchy.is_known(global_role):
            logger.warning("ignored unknown global role actor_id=%s role=%s", actor_id, global_role)
            return assigned
        if any(view.role_type == global_role for view in assigned):
            return assigned
        synthetic = AssignmentView(
            id=None,
            actor_id=actor_id,
            tenant_id=None,
            role_type=global_role,
            scope=RoleScope.GLOBAL,
            synthetic=True,
        )
        return [synthetic, *assigned]

    def role_types_of(self, actor_id: UUID, tenant_id: UUID | None = None) -> list[str]:
        """返回人员当前有效的角色类型（去重，保持顺序）。"""
        return list(dict.fromkeys(view.role_type for view in self.list_roles(actor_id, tenant_id)))

    def highest_role_type(self, actor_id: UUID, tenant_id: UUID | None = None) -> RoleType | None:
        """返回人员权威最高的已注册角色类型。"""
        known = [role for role in self.role_types_of(actor_id, tenant_id) if self.hierarchy.is_known(role)]
        if not known:
            return None
        return self.hierarchy.highest_of(known)

    def has_role(
        self,
        actor_id: UUID,
        role_type: str,
        tenant_id: UUID | None = None,
        company_id: UUID | None = None,
    ) -> bool:
        for view in self.list_roles(actor_id, tenant_id):
            if view.role_type != role_type:
                continue
            if company_id is None or view.company_id == company_id:
                return True
        return False

    def list_by_role(
        self,
        role_type: str,
        tenant_id: UUID,
        company_id: UUID | None = None,
    ) -> list[AssignmentView]:
        """反查持有某角色的有效分配。"""
        role = self.hierarchy.definition_of(role_type).role_type
        stmt = (
            select(RoleAssignment)
            .where(RoleAssignment.role_type == role.value)
            .where(RoleAssignment.tenant_id == tenant_id)
            .where(self._active_filter(self.now()))
        )
        if company_id is not None:
            stmt = stmt.where(RoleAssignment.company_id == company_id)
        stmt = stmt.order_by(RoleAssignment.assigned_at.desc())
        with self._persistence("list_by_role"):
            rows = self.db.execute(stmt).scalars().all()
        return [AssignmentView.from_row(row) for row in rows]

    def list_company_assignments(self, tenant_id: UUID, company_id: UUID) -> list[AssignmentView]:
        """返回某公司范围内的全部有效分配。"""
        stmt = (
            select(RoleAssignment)
            .where(RoleAssignment.tenant_id == tenant_id)
            .where(RoleAssignment.company_id == company_id)
            .where(self._active_filter(self.now()))
            .order_by(RoleAssignment.role_type.asc(), RoleAssignment.assigned_at.desc())
        )
        with self._persistence("list_company_assignments"):
            rows = self.db.execute(stmt).scalars().all()
        return [AssignmentView.from_row(row) for row in rows]

    def primary_role_of(self, actor_id: UUID, tenant_id: UUID) -> AssignmentView | None:
        """按权威从高到低选出主角色；都不在层级表中时退回第一条分配。"""
        views = self.list_roles(actor_id, tenant_id)
        if not views:
            return None
        known = [view.role_type for view in views if self.hierarchy.is_known(view.role_type)]
        if not known:
            return views[0]
        best = self.hierarchy.highest_of(known)
        return next(view for view in views if view.role_type == best)

    def get_assignment(self, assignment_id: UUID) -> AssignmentView:
        with self._persistence("get_assignment"):
            row = self.db.get(RoleAssignment, assignment_id)
        if row is None:
            raise AssignmentNotFound(assignment_id)
        return AssignmentView.from_row(row)

    # ---- 权限授予写入 ----

    def _grant_role_permissions(self, assignment_id: UUID, codes: Iterable[str]) -> list[str]:
        normalized = sorted({normalize_permission(code) for code in codes if code and code.strip()})
        if not normalized:
            return []
        existing = {
            row.permission: row
            for row in self.db.execute(
                select(RolePermission)
                .where(RolePermission.assignment_id == assignment_id)
                .where(RolePermission.permission.in_(normalized))
            ).scalars()
        }
        for code in normalized:
            row = existing.get(code)
            if row is not None:
                row.is_granted = True
                continue
            self.db.add(RolePermission(assignment_id=assignment_id, permission=code, is_granted=True))
        return normalized

    def set_role_permissions(self, assignment_id: UUID, codes: Iterable[str]) -> list[str]:
        """以给定集合覆盖分配上的显式权限点；移出的行保留但置为未授予。"""
        self.get_assignment(assignment_id)
        with self._persistence("set_role_permissions"):
            granted = self._grant_role_permissions(assignment_id, codes)
            revoke_stmt = (
                update(RolePermission)
                .where(RolePermission.assignment_id == assignment_id)
                .where(RolePermission.is_granted.is_(True))
            )
            if granted:
                revoke_stmt = revoke_stmt.where(RolePermission.permission.not_in(granted))
            self.db.execute(
                revoke_stmt.values(is_granted=False, updated_at=self.now()).execution_options(
                    synchronize_session=False
                )
            )
            self.db.flush()
        return granted

    def set_advanced_permissions(self, assignment_id: UUID, grants: Iterable[AdvancedGrant]) -> list[AdvancedGrant]:
        """以给定集合整体替换分配上的高级权限。"""
        self.get_assignment(assignment_id)
        with self._persistence("set_advanced_permissions"):
            self.db.execute(delete(AdvancedPermission).where(AdvancedPermission.assignment_id == assignment_id))
            rows = [
                AdvancedPermission(
                    assignment_id=assignment_id,
                    resource=_normalize_name(grant.resource),
                    action=_normalize_name(grant.action),
                    scope=PermissionScope(grant.scope).value,
                    allowed_fields=list(dict.fromkeys(grant.allowed_fields)),
                    conditions=dict(grant.conditions) if grant.conditions else None,
                )
                for grant in grants
            ]
            self.db.add_all(rows)
            self.db.flush()
        return [AdvancedGrant.from_row(row) for row in rows]

    def update_assignment_permissions_as(
        self,
        grantor_id: UUID,
        assignment_id: UUID,
        *,
        permissions: Iterable[str] | None = None,
        advanced: Iterable[AdvancedGrant] | None = None,
    ) -> AssignmentView:
        """以操作人身份修改分配上的权限，要求操作人权威不低于被修改的角色。"""
        assignment = self.get_assignment(assignment_id)
        grantor_role = self.highest_role_type(grantor_id, assignment.tenant_id)
        if grantor_role is None or not self.hierarchy.can_manage(grantor_role, assignment.role_type):
            logger.warning(
                "permission update rejected grantor_id=%s grantor_role=%s assignment_id=%s",
                grantor_id,
                grantor_role,
                assignment_id,
            )
            raise AssignmentNotAllowed(assignment.role_type, grantor_role)
        if permissions is not None:
            self.set_role_permissions(assignment_id, permissions)
        if advanced is not None:
            self.set_advanced_permissions(assignment_id, advanced)
        return assignment

    # ---- 解析器读取 ----

    def _actor_assignment_ids(self, actor_id: UUID, tenant_id: UUID | None):
        """人员有效分配 ID 子查询；带租户时同时包含全局范围分配。"""
        stmt = select(RoleAssignment.id).where(RoleAssignment.actor_id == actor_id).where(
            self._active_filter(self.now())
        )
        if tenant_id is not None:
            stmt = stmt.where(self._tenant_filter(tenant_id))
        return stmt

    def advanced_grants(
        self,
        actor_id: UUID,
        resource: str | None = None,
        action: str | None = None,
        tenant_id: UUID | None = None,
    ) -> list[AdvancedGrant]:
        """返回绑定在人员有效分配上的高级权限，可按资源与动作过滤。"""
        stmt = select(AdvancedPermission).where(
            AdvancedPermission.assignment_id.in_(self._actor_assignment_ids(actor_id, tenant_id))
        )
        if resource is not None:
            stmt = stmt.where(AdvancedPermission.resource == _normalize_name(resource))
        if action is not None:
            stmt = stmt.where(AdvancedPermission.action == _normalize_name(action))
        with self._persistence("advanced_grants"):
            rows = self.db.execute(stmt.order_by(AdvancedPermission.created_at.asc())).scalars().all()
        return [AdvancedGrant.from_row(row) for row in rows]

    def explicit_grants(self, actor_id: UUID, tenant_id: UUID | None = None) -> set[str]:
        """返回人员有效分配上已授予的显式权限点。"""
        stmt = (
            select(RolePermission.permission)
            .where(RolePermission.assignment_id.in_(self._actor_assignment_ids(actor_id, tenant_id)))
            .where(RolePermission.is_granted.is_(True))
        )
        with self._persistence("explicit_grants"):
            return set(self.db.execute(stmt).scalars().all())

    def has_explicit_grant(
        self,
        actor_id: UUID,
        code: PermissionCode,
        tenant_id: UUID | None = None,
    ) -> bool:
        """判断是否存在与权限点完全一致的显式授予或高级权限。"""
        if code.code in self.explicit_grants(actor_id, tenant_id):
            return True
        return any(grant.code == code for grant in self.advanced_grants(actor_id, tenant_id=tenant_id))

    def custom_role_permissions(self, actor_id: UUID, tenant_id: UUID | None = None) -> set[str]:
        """返回人员分配所引用的自定义角色（未删除）包含的权限点。"""
        stmt = (
            select(CustomRolePermission.permission)
            .join(CustomRole, CustomRole.id == CustomRolePermission.custom_role_id)
            .join(RoleAssignment, RoleAssignment.custom_role_id == CustomRole.id)
            .where(RoleAssignment.actor_id == actor_id)
            .where(self._active_filter(self.now()))
            .where(CustomRole.deleted_at.is_(None))
        )
        if tenant_id is not None:
            stmt = stmt.where(self._tenant_filter(tenant_id))
        with self._persistence("custom_role_permissions"):
            return set(self.db.execute(stmt).scalars().all())
