"""角色分配与权限授予模型。"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from tms_api.models.base import Base, JSONType, TenantScopedMixin, TimestampMixin, UUIDPrimaryKeyMixin
from tms_api.models.enums import PermissionScope, RoleScope


class RoleAssignment(Base, UUIDPrimaryKeyMixin, TenantScopedMixin, TimestampMixin):
    """人员持有某个角色的一条分配记录。

    说明：
    1. 撤销只做软停用（is_active=false），保留历史用于审计。
    2. natural_key 唯一，保证同一 (人员, 租户, 角色, 公司) 只有一行。
    3. valid_until 为空表示永不过期。
    """

    __tablename__ = "role_assignments"
    __table_args__ = (
        UniqueConstraint("natural_key", name="uk_role_assignment_natural_key"),
        # 公司范围分配必须带公司 ID。
        CheckConstraint("scope <> 'company' OR company_id IS NOT NULL", name="company_scope"),
        Index("ix_role_assignments_actor_active", "actor_id", "is_active"),
        Index("ix_role_assignments_expiry", "is_active", "valid_until"),
    )

    # 持有角色的人员 ID。
    actor_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 角色类型（RoleType 取值）。
    role_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    # 生效范围（global/tenant/company/department）。
    scope: Mapped[str] = mapped_column(String(16), nullable=False, default=RoleScope.TENANT)
    # 公司范围分配时的公司 ID。
    company_id: Mapped[UUID | None] = mapped_column(index=True)
    # 部门范围分配时的部门 ID。
    department_id: Mapped[UUID | None] = mapped_column()
    # 关联的租户自定义角色（权限包）ID。
    custom_role_id: Mapped[UUID | None] = mapped_column()
    # 分配人 ID，系统初始化时为空。
    assigned_by: Mapped[UUID | None] = mapped_column()
    # 最近一次分配时间，重复分配会刷新。
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    # 过期时间，为空表示永不过期。
    valid_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    # 是否有效，撤销与过期清理都只翻转该字段。
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # 是否为主角色，仅作提示，不做唯一约束。
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # 业务自然键：actor:tenant:role:company。
    natural_key: Mapped[str] = mapped_column(String(200), nullable=False)


class AdvancedPermission(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """挂在角色分配上的细粒度权限（字段级 + 条件）。"""

    __tablename__ = "advanced_permissions"

    # 所属角色分配 ID。
    assignment_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 资源名（如 employees / companies）。
    resource: Mapped[str] = mapped_column(String(64), nullable=False)
    # 动作名（如 view / edit）。
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    # 作用范围（global/tenant/company）。
    scope: Mapped[str] = mapped_column(String(16), nullable=False, default=PermissionScope.GLOBAL)
    # 允许返回的字段，空列表表示不限制。
    allowed_fields: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    # 声明式条件，例如 {"ownedBy": "self"}。
    conditions: Mapped[dict[str, Any] | None] = mapped_column(JSONType)


class RolePermission(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """挂在角色分配上的显式权限点授予。"""

    __tablename__ = "role_permissions"
    __table_args__ = (UniqueConstraint("assignment_id", "permission", name="uk_role_permission"),)

    # 所属角色分配 ID。
    assignment_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 权限点编码（ACTION_RESOURCE 形式）。
    permission: Mapped[str] = mapped_column(String(128), nullable=False)
    # 是否授予；false 的行保留配置痕迹但不生效。
    is_granted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class CustomRole(Base, UUIDPrimaryKeyMixin, TenantScopedMixin, TimestampMixin):
    """租户自定义角色（权限包）。"""

    __tablename__ = "custom_roles"
    __table_args__ = (UniqueConstraint("tenant_id", "name", name="uk_custom_role_name"),)

    # 角色名称。
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    # 角色说明。
    description: Mapped[str | None] = mapped_column(Text)
    # 逻辑删除时间。
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class CustomRolePermission(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """自定义角色包含的权限点。"""

    __tablename__ = "custom_role_permissions"
    __table_args__ = (UniqueConstraint("custom_role_id", "permission", name="uk_custom_role_permission"),)

    # 所属自定义角色 ID。
    custom_role_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 权限点编码。
    permission: Mapped[str] = mapped_column(String(128), nullable=False)
