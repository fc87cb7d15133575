"""服务层能力导出集合。"""

from tms_api.services.assignments import AdvancedGrant, AssignmentView, RoleAssignmentStore, derive_scope
from tms_api.services.conditions import ConditionEvaluator, filter_fields
from tms_api.services.directory import ActorDirectory, SqlActorDirectory
from tms_api.services.hierarchy import HierarchyIndex, RoleDefinition, build_default_hierarchy
from tms_api.services.permission_codes import PermissionCode, normalize_permission, permission_catalog
from tms_api.services.resolver import PermissionResolver, is_unrestricted, scope_matches
from tms_api.services.stats import detailed_statistics, expiration_report, permission_usage, role_statistics

__all__ = [
    "ActorDirectory",
    "SqlActorDirectory",
    "HierarchyIndex",
    "RoleDefinition",
    "build_default_hierarchy",
    "PermissionCode",
    "normalize_permission",
    "permission_catalog",
    "AdvancedGrant",
    "AssignmentView",
    "RoleAssignmentStore",
    "derive_scope",
    "ConditionEvaluator",
    "filter_fields",
    "PermissionResolver",
    "is_unrestricted",
    "scope_matches",
    "role_statistics",
    "detailed_statistics",
    "permission_usage",
    "expiration_report",
]
