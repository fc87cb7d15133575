"""角色分配与权限判定相关请求结构。"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from tms_api.models.enums import PermissionScope, RoleType


def _dedupe_codes(value: list[str]) -> list[str]:
    """规范化权限编码（去空格、大写）并去重，保持原顺序。"""
    normalized = []
    seen = set()
    for item in value:
        code = item.strip().upper()
        if not code or code in seen:
            continue
        seen.add(code)
        normalized.append(code)
    return normalized


class RoleAssignRequest(BaseModel):
    """角色分配请求。"""

    actor_id: UUID = Field(description="被分配角色的人员 ID。")
    role_type: RoleType = Field(description="目标角色类型。", examples=["COMPANY_ADMIN"])
    company_id: UUID | None = Field(default=None, description="公司范围分配时的公司 ID。")
    department_id: UUID | None = Field(default=None, description="部门范围分配时的部门 ID。")
    expires_at: datetime | None = Field(default=None, description="过期时间，为空表示永不过期。")
    custom_permissions: list[str] = Field(
        default_factory=list,
        description="附加的显式权限点（ACTION_RESOURCE 形式）。",
        examples=[["VIEW_REPORTS", "EXPORT_REPORTS"]],
    )
    custom_role_id: UUID | None = Field(default=None, description="引用的租户自定义角色 ID。")
    is_primary: bool = Field(default=False, description="是否标记为主角色（仅提示）。")

    @field_validator("custom_permissions")
    @classmethod
    def normalize_codes(cls, value: list[str]) -> list[str]:
        return _dedupe_codes(value)


class RoleRevokeRequest(BaseModel):
    """角色撤销请求。"""

    actor_id: UUID = Field(description="人员 ID。")
    role_type: RoleType = Field(description="要撤销的角色类型。")
    company_id: UUID | None = Field(default=None, description="限定公司；为空时撤销该角色在全部公司的分配。")


class AdvancedPermissionItem(BaseModel):
    """单条高级权限配置。"""

    resource: str = Field(min_length=1, max_length=64, description="资源名。", examples=["employees"])
    action: str = Field(min_length=1, max_length=64, description="动作名。", examples=["view"])
    scope: PermissionScope = Field(default=PermissionScope.GLOBAL, description="作用范围。")
    allowed_fields: list[str] = Field(default_factory=list, description="允许返回的字段，空表示不限制。")
    conditions: dict[str, Any] | None = Field(
        default=None,
        description="声明式条件，例如 {\"ownedBy\": \"self\"} 或 {\"companyId\": \"same\"}。",
    )


class AssignmentPermissionUpdateRequest(BaseModel):
    """分配权限更新请求；字段为空表示不修改对应部分。"""

    permission_codes: list[str] | None = Field(default=None, description="覆盖后的显式权限点集合。")
    advanced_permissions: list[AdvancedPermissionItem] | None = Field(
        default=None,
        description="覆盖后的高级权限集合。",
    )

    @field_validator("permission_codes")
    @classmethod
    def normalize_codes(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return _dedupe_codes(value)


class PermissionCheckRequest(BaseModel):
    """权限点判定请求。"""

    permissions: list[str] = Field(min_length=1, description="待判定权限点。", examples=[["VIEW_EMPLOYEES"]])
    require_all: bool = Field(default=False, description="是否要求全部满足。")
    company_id: UUID | None = Field(default=None, description="判定上下文中的公司 ID。")
    resource_id: UUID | None = Field(default=None, description="判定上下文中的资源 ID。")

    @field_validator("permissions")
    @classmethod
    def normalize_codes(cls, value: list[str]) -> list[str]:
        return _dedupe_codes(value)


class ResourceAccessRequest(BaseModel):
    """记录级访问判定请求。"""

    resource: str = Field(min_length=1, description="资源名。", examples=["employees"])
    action: str = Field(min_length=1, description="动作名。", examples=["view"])
    resource_id: UUID | None = Field(default=None, description="目标记录 ID。")


class DataFilterRequest(BaseModel):
    """按权限裁剪数据的预览请求。"""

    resource: str = Field(min_length=1, description="资源名。")
    action: str = Field(min_length=1, description="动作名。")
    data: dict[str, Any] | list[dict[str, Any]] = Field(description="待裁剪的对象或对象列表。")
