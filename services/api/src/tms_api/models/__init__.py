"""ORM 模型导出集合。"""

from tms_api.models.person import Person
from tms_api.models.role import AdvancedPermission, CustomRole, CustomRolePermission, RoleAssignment, RolePermission

__all__ = [
    "AdvancedPermission",
    "CustomRole",
    "CustomRolePermission",
    "Person",
    "RoleAssignment",
    "RolePermission",
]
