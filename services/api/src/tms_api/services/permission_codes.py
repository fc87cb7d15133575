"""权限点编码与目录。

对外线上格式保持 `ACTION_RESOURCE`（如 `VIEW_EMPLOYEES`），
进入引擎边界时一次性解析为 PermissionCode，后续判断不再反复拆分字符串。
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class PermissionCode:
    """结构化权限点：动作 + 资源。"""

    action: str
    resource: str

    @classmethod
    def parse(cls, code: "str | PermissionCode") -> "PermissionCode | None":
        """解析 `ACTION_RESOURCE` 字符串，不含下划线时返回 None。

        只在第一个下划线处切分，`VIEW_FORM_TEMPLATES` -> (VIEW, FORM_TEMPLATES)。
        """
        if isinstance(code, PermissionCode):
            return code
        normalized = code.strip().upper()
        action, sep, resource = normalized.partition("_")
        if not sep or not action or not resource:
            return None
        return cls(action=action, resource=resource)

    @classmethod
    def from_parts(cls, action: str, resource: str) -> "PermissionCode":
        """由高级权限记录的 (action, resource) 构造，统一转大写。"""
        return cls(action=action.strip().upper(), resource=resource.strip().upper())

    @property
    def code(self) -> str:
        """返回线上字符串格式。"""
        return f"{self.action}_{self.resource}"

    def __str__(self) -> str:
        return self.code


def normalize_permission(permission: "str | PermissionCode") -> str:
    """将任意入参规范化为线上字符串格式。"""
    if isinstance(permission, PermissionCode):
        return permission.code
    return permission.strip().upper()


CRUD_ACTIONS = ("VIEW", "CREATE", "EDIT", "DELETE")


def actions_on(resource: str, *actions: str) -> frozenset[str]:
    """生成某资源上若干动作的权限点集合。"""
    return frozenset(PermissionCode(action, resource).code for action in actions)


def crud(resource: str, *extra_actions: str) -> frozenset[str]:
    """生成资源的增删改查权限点，并可追加额外动作。"""
    return actions_on(resource, *CRUD_ACTIONS, *extra_actions)


# 独立权限点（不严格遵循 ACTION_RESOURCE 语义的历史编码）。
STANDALONE_PERMISSIONS = frozenset(
    {
        "ROLE_MANAGEMENT",
        "USER_MANAGEMENT",
        "TENANT_MANAGEMENT",
        "HIERARCHY_MANAGEMENT",
        "MANAGE_USERS",
        "ASSIGN_ROLES",
        "REVOKE_ROLES",
        "SYSTEM_SETTINGS",
        "ADMIN_PANEL",
        "VIEW_ANALYTICS",
        "VIEW_GDPR_DATA",
        "EXPORT_GDPR_DATA",
        "DELETE_GDPR_DATA",
        "MANAGE_CONSENTS",
        "MANAGE_PUBLIC_CONTENT",
        "READ_PUBLIC_CONTENT",
    }
)

PERMISSION_CATALOG: frozenset[str] = frozenset().union(
    crud("COMPANIES"),
    crud("EMPLOYEES"),
    crud("PERSONS"),
    crud("USERS"),
    crud("COURSES"),
    crud("TRAINERS"),
    crud("DOCUMENTS", "DOWNLOAD"),
    crud("SCHEDULES"),
    crud("ROLES"),
    crud("HIERARCHY", "MANAGE"),
    crud("TENANTS"),
    crud("ADMINISTRATION"),
    crud("GDPR", "MANAGE"),
    crud("REPORTS", "EXPORT"),
    crud("FORM_TEMPLATES", "MANAGE"),
    crud("FORM_SUBMISSIONS", "MANAGE", "EXPORT"),
    crud("PUBLIC_CMS", "MANAGE"),
    crud("TEMPLATES", "MANAGE"),
    crud("CMS"),
    crud("SUBMISSIONS", "MANAGE", "EXPORT"),
    STANDALONE_PERMISSIONS,
)


def permission_catalog() -> list[str]:
    """返回排序后的权限点目录。"""
    return sorted(PERMISSION_CATALOG)
