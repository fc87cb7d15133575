"""权限解析器。

判定顺序（命中即返回）：
1. 任一有效分配为 SUPER_ADMIN / ADMIN：直接放行，不做范围校验。
2. 角色默认权限包含目标权限点，且分配范围与请求上下文匹配。
3. 目标权限点形如 ACTION_RESOURCE 时，查找分配上的显式授予与高级权限。
4. 其余情况返回 False；“未授予”不是异常。

解析器本身无状态，每个请求基于存储、层级索引与条件评估器构造。
"""

from collections.abc import Iterable
import logging
from typing import Any
from uuid import UUID

from tms_api.models.enums import PermissionScope, RoleScope, RoleType
from tms_api.services.assignments import AdvancedGrant, AssignmentView, RoleAssignmentStore
from tms_api.services.conditions import ConditionEvaluator, filter_fields
from tms_api.services.hierarchy import HierarchyIndex
from tms_api.services.permission_codes import PermissionCode, normalize_permission

logger = logging.getLogger("tms_api.resolver")

# 不受任何权限与范围限制的角色。放行边界只在这里定义。
UNRESTRICTED_ROLE_TYPES = frozenset({RoleType.SUPER_ADMIN, RoleType.ADMIN})


def is_unrestricted(role_types: Iterable[str | None]) -> bool:
    """角色集合中是否包含不受限角色（全局放行）。"""
    return any(role_type in UNRESTRICTED_ROLE_TYPES for role_type in role_types if role_type)


def scope_matches(
    assignment: AssignmentView,
    tenant_id: UUID | None,
    company_id: UUID | None,
) -> bool:
    """判断一条分配的范围是否覆盖请求上下文。

    公司范围分配：上下文带公司时必须同一公司；上下文未带公司时按租户匹配。
    租户/全局范围分配：双方任一侧无租户限制，或租户一致即匹配。
    """
    if assignment.scope == RoleScope.COMPANY and assignment.company_id is not None and company_id is not None:
        return assignment.company_id == company_id
    if assignment.tenant_id is None or tenant_id is None:
        return True
    return assignment.tenant_id == tenant_id


class PermissionResolver:
    """计算人员的有效权限与访问判定。"""

    def __init__(
        self,
        store: RoleAssignmentStore,
        hierarchy: HierarchyIndex,
        evaluator: ConditionEvaluator,
    ):
        self.store = store
        self.hierarchy = hierarchy
        self.evaluator = evaluator

    def _default_permissions(self, role_type: str) -> frozenset[str]:
        if not self.hierarchy.is_known(role_type):
            # 历史数据中可能残留已下线的角色类型，不授予任何默认权限。
            logger.warning("assignment references unknown role type role=%s", role_type)
            return frozenset()
        return self.hierarchy.default_permissions_of(role_type)

    def has_permission(
        self,
        actor_id: UUID,
        permission: str | PermissionCode,
        *,
        tenant_id: UUID | None = None,
        company_id: UUID | None = None,
        resource_id: UUID | None = None,
    ) -> bool:
        """判断人员在给定上下文中是否持有权限点。"""
        wanted = normalize_permission(permission)
        assignments = self.store.list_roles(actor_id)

        if is_unrestricted(view.role_type for view in assignments):
            return True

        for assignment in assignments:
            if wanted not in self._default_permissions(assignment.role_type):
                continue
            if scope_matches(assignment, tenant_id, company_id):
                return True

        code = PermissionCode.parse(wanted)
        if code is not None and self.store.has_explicit_grant(actor_id, code, tenant_id):
            return True
        return False

    def has_permissions(
        self,
        actor_id: UUID,
        permissions: Iterable[str | PermissionCode],
        *,
        require_all: bool = False,
        tenant_id: UUID | None = None,
        company_id: UUID | None = None,
        resource_id: UUID | None = None,
    ) -> bool:
        """批量判定；require_all=False 时任意一个命中即可。"""
        results = (
            self.has_permission(
                actor_id,
                permission,
                tenant_id=tenant_id,
                company_id=company_id,
                resource_id=resource_id,
            )
            for permission in permissions
        )
        return all(results) if require_all else any(results)

    def get_user_permissions(self, actor_id: UUID, tenant_id: UUID | None = None) -> set[str]:
        """返回人员的有效权限集合（默认权限 + 显式授予 + 高级权限派生 + 自定义角色）。"""
        permissions: set[str] = set()
        for assignment in self.store.list_roles(actor_id, tenant_id):
            permissions.update(self._default_permissions(assignment.role_type))
        permissions.update(self.store.explicit_grants(actor_id, tenant_id))
        permissions.update(grant.code.code for grant in self.store.advanced_grants(actor_id, tenant_id=tenant_id))
        permissions.update(self.store.custom_role_permissions(actor_id, tenant_id))
        return permissions

    def get_advanced_permissions(
        self,
        actor_id: UUID,
        resource: str,
        action: str,
        tenant_id: UUID | None = None,
    ) -> list[AdvancedGrant]:
        return self.store.advanced_grants(actor_id, resource, action, tenant_id)

    def can_access_resource(
        self,
        actor_id: UUID,
        resource: str,
        resource_id: UUID | None,
        action: str,
        tenant_id: UUID | None = None,
    ) -> bool:
        """记录级访问判定：无高级权限时退化为基础权限点判断。"""
        grants = self.get_advanced_permissions(actor_id, resource, action, tenant_id)
        if not grants:
            return self.has_permission(
                actor_id,
                PermissionCode.from_parts(action, resource),
                tenant_id=tenant_id,
                resource_id=resource_id,
            )
        for grant in grants:
            if grant.scope == PermissionScope.GLOBAL:
                return True
            if grant.conditions and self.evaluator.evaluate(grant.conditions, actor_id, resource_id):
                return True
        return False

    def filter_data_by_permissions(
        self,
        actor_id: UUID,
        resource: str,
        action: str,
        data: Any,
        tenant_id: UUID | None = None,
    ) -> Any:
        """按高级权限裁剪返回数据。

        多条授予的允许字段取并集；任一 global/tenant 授予未限制字段时整体不裁剪。
        没有高级权限时按基础权限点全有或全无（返回 None）。
        """
        if is_unrestricted(view.role_type for view in self.store.list_roles(actor_id)):
            return data

        grants = self.get_advanced_permissions(actor_id, resource, action, tenant_id)
        if not grants:
            allowed = self.has_permission(
                actor_id,
                PermissionCode.from_parts(action, resource),
                tenant_id=tenant_id,
            )
            return data if allowed else None

        allowed_fields: set[str] = set()
        for grant in grants:
            if grant.scope in {PermissionScope.GLOBAL, PermissionScope.TENANT} and not grant.allowed_fields:
                return data
            allowed_fields.update(grant.allowed_fields)
        return filter_fields(data, allowed_fields)
