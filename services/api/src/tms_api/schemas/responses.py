"""接口成功响应 `data` 字段结构定义。

说明：
1. 所有业务接口统一返回 `SuccessResponse[data=...]`。
2. 本文件专注于定义各接口在 `data` 中的业务字段。
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from tms_api.schemas.common import BaseSchema


class HealthStatusData(BaseSchema):
    """健康检查返回结构。"""

    status: str = Field(description="健康状态值，常见为 ok 或 ready。")


class ReadinessData(HealthStatusData):
    hierarchy_root: str = Field(description="层级根角色。")
    role_count: int = Field(description="已加载的角色类型数量。")


class RoleAssignmentData(BaseSchema):
    """角色分配视图。"""

    id: UUID | None = Field(description="分配 ID；由全局角色属性合成时为空。")
    actor_id: UUID = Field(description="人员 ID。")
    tenant_id: UUID | None = Field(description="租户 ID；全局角色为空。")
    role_type: str = Field(description="角色类型。")
    scope: str = Field(description="生效范围（global/tenant/company/department）。")
    company_id: UUID | None = Field(default=None, description="公司 ID。")
    department_id: UUID | None = Field(default=None, description="部门 ID。")
    custom_role_id: UUID | None = Field(default=None, description="自定义角色 ID。")
    assigned_by: UUID | None = Field(default=None, description="分配人 ID。")
    assigned_at: datetime | None = Field(default=None, description="最近一次分配时间。")
    valid_until: datetime | None = Field(default=None, description="过期时间。")
    is_primary: bool = Field(default=False, description="是否主角色。")
    synthetic: bool = Field(default=False, description="是否由全局角色属性合成。")


class RevokeResultData(BaseSchema):
    """撤销结果。"""

    revoked: bool = Field(description="是否有分配被停用。")


class SweepResultData(BaseSchema):
    """过期清理结果。"""

    deactivated: int = Field(description="本次停用的分配数量。")


class EffectivePermissionsData(BaseSchema):
    """有效权限集合。"""

    actor_id: UUID = Field(description="人员 ID。")
    tenant_id: UUID | None = Field(description="租户 ID。")
    permissions: list[str] = Field(description="排序后的有效权限点。")


class AdvancedPermissionData(BaseSchema):
    """高级权限视图。"""

    resource: str = Field(description="资源名。")
    action: str = Field(description="动作名。")
    scope: str = Field(description="作用范围。")
    allowed_fields: list[str] = Field(description="允许字段，空表示不限制。")
    conditions: dict[str, Any] | None = Field(default=None, description="条件对象。")


class RoleDefinitionData(BaseSchema):
    """层级表中的角色定义。"""

    role_type: str = Field(description="角色类型。")
    level: int = Field(description="权威层级，越小越高。")
    name: str = Field(description="展示名称。")
    description: str = Field(description="角色说明。")
    assignable_roles: list[str] = Field(description="可直接分配的角色。")
    default_permissions: list[str] = Field(description="默认权限点。")


class RoleDetailData(RoleDefinitionData):
    """角色详情（含层级推导信息）。"""

    path: list[str] = Field(description="从顶层角色到该角色的分配链。")
    subordinates: list[str] = Field(description="全部下属角色。")


class AssignableRolesData(BaseSchema):
    """当前人员可分配角色。"""

    role_type: str | None = Field(description="当前人员权威最高的角色。")
    assignable_roles: list[str] = Field(description="可直接分配的角色。")
    visible_roles: list[str] = Field(description="可见（权威更低）的角色。")


class PermissionCheckData(BaseSchema):
    """权限点判定结果。"""

    allowed: bool = Field(description="是否放行。")
    results: dict[str, bool] = Field(description="逐个权限点的判定结果。")


class ResourceAccessData(BaseSchema):
    """记录级访问判定结果。"""

    allowed: bool = Field(description="是否允许访问。")


class DataFilterData(BaseSchema):
    """数据裁剪结果。"""

    data: Any = Field(description="裁剪后的数据；无权限时为空。")


class PermissionCatalogData(BaseSchema):
    """权限目录结构。"""

    permission_codes: list[str] = Field(description="可用权限点编码列表。")
