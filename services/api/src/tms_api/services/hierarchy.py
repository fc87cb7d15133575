"""角色层级索引。

层级表在进程启动时构建并校验一次，之后只读，可被并发请求无锁共享。
规则：
1. level 越小权威越高，SUPER_ADMIN 为唯一最小值。
2. 角色只能分配 level 严格大于自身的角色（权威沿分配边严格递减）。
3. 分配关系图必须无环；违反任何一条都在启动阶段抛出 HierarchyConfigError。
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from tms_api.core.errors import HierarchyConfigError, UnknownRoleType
from tms_api.models.enums import RoleType
from tms_api.services.permission_codes import PERMISSION_CATALOG, actions_on, crud


@dataclass(frozen=True)
class RoleDefinition:
    """单个角色类型的静态定义。"""

    role_type: RoleType
    level: int
    name: str
    description: str = ""
    assignable_roles: frozenset[RoleType] = field(default_factory=frozenset)
    default_permissions: frozenset[str] = field(default_factory=frozenset)


class HierarchyIndex:
    """角色层级查询与推导（纯内存，无 I/O）。"""

    def __init__(self, definitions: Iterable[RoleDefinition]):
        ordered: dict[RoleType, RoleDefinition] = {}
        for definition in definitions:
            if definition.role_type in ordered:
                raise HierarchyConfigError(f"duplicate role definition: {definition.role_type}")
            ordered[definition.role_type] = definition
        if not ordered:
            raise HierarchyConfigError("hierarchy must define at least one role")

        self._definitions: Mapping[RoleType, RoleDefinition] = MappingProxyType(ordered)
        # 声明顺序用于层级相同时的稳定决胜。
        self._order: Mapping[RoleType, int] = MappingProxyType(
            {role_type: index for index, role_type in enumerate(ordered)}
        )
        self._validate_edges()
        self._root = self._resolve_root()
        self._subordinates: Mapping[RoleType, frozenset[RoleType]] = MappingProxyType(self._build_closure())
        self._validate_root()

    # ---- 启动期校验 ----

    def _validate_edges(self) -> None:
        for definition in self._definitions.values():
            for target in definition.assignable_roles:
                target_definition = self._definitions.get(target)
                if target_definition is None:
                    raise HierarchyConfigError(
                        f"{definition.role_type} references undefined assignable role {target}"
                    )
                if target_definition.level <= definition.level:
                    raise HierarchyConfigError(
                        f"{definition.role_type} (level {definition.level}) cannot assign "
                        f"{target} (level {target_definition.level}): authority must strictly decrease"
                    )

    def _resolve_root(self) -> RoleType:
        min_level = min(definition.level for definition in self._definitions.values())
        roots = [role for role, definition in self._definitions.items() if definition.level == min_level]
        if len(roots) != 1:
            raise HierarchyConfigError(f"hierarchy must have exactly one top role, got {roots}")
        return roots[0]

    def _build_closure(self) -> dict[RoleType, frozenset[RoleType]]:
        """深度优先计算每个角色的传递下属集合，遇到环直接失败。"""
        closure: dict[RoleType, frozenset[RoleType]] = {}
        visiting: set[RoleType] = set()

        def visit(role_type: RoleType) -> frozenset[RoleType]:
            if role_type in closure:
                return closure[role_type]
            if role_type in visiting:
                raise HierarchyConfigError(f"cycle detected in assignable roles at {role_type}")
            visiting.add(role_type)
            reachable: set[RoleType] = set()
            for child in self._definitions[role_type].assignable_roles:
                reachable.add(child)
                reachable.update(visit(child))
            visiting.discard(role_type)
            closure[role_type] = frozenset(reachable)
            return closure[role_type]

        for role_type in self._definitions:
            visit(role_type)
        return closure

    def _validate_root(self) -> None:
        others = set(self._definitions) - {self._root}
        missing = others - self._definitions[self._root].assignable_roles
        if missing:
            raise HierarchyConfigError(
                f"top role {self._root} must directly assign every other role, missing {sorted(missing)}"
            )

    # ---- 基础查询 ----

    @property
    def root(self) -> RoleType:
        """返回权威最高的角色。"""
        return self._root

    @property
    def role_types(self) -> tuple[RoleType, ...]:
        """按声明顺序返回全部角色类型。"""
        return tuple(self._definitions)

    def _require(self, role_type: object) -> RoleDefinition:
        try:
            normalized = RoleType(role_type)
        except ValueError:
            raise UnknownRoleType(role_type) from None
        definition = self._definitions.get(normalized)
        if definition is None:
            raise UnknownRoleType(role_type)
        return definition

    def is_known(self, role_type: object) -> bool:
        """判断角色类型是否已注册。"""
        try:
            self._require(role_type)
        except UnknownRoleType:
            return False
        return True

    def definition_of(self, role_type: object) -> RoleDefinition:
        """返回角色完整定义。"""
        return self._require(role_type)

    def level_of(self, role_type: object) -> int:
        """返回角色层级，未注册时抛出 UnknownRoleType。"""
        return self._require(role_type).level

    def default_permissions_of(self, role_type: object) -> frozenset[str]:
        """返回角色的默认权限点集合。"""
        return self._require(role_type).default_permissions

    def assignable_roles_of(self, role_type: object) -> frozenset[RoleType]:
        """返回角色可直接分配的角色集合。"""
        return self._require(role_type).assignable_roles

    # ---- 层级推导 ----

    def is_assignable(self, grantor_role: object, target_role: object) -> bool:
        """判断 grantor 是否可以直接分配 target。"""
        grantor = self._require(grantor_role)
        target = self._require(target_role)
        return target.role_type in grantor.assignable_roles

    def can_manage(self, manager_role: object, target_role: object) -> bool:
        """同级或更高权威才能修改既有分配。"""
        return self.level_of(manager_role) <= self.level_of(target_role)

    def subordinates_of(self, role_type: object) -> frozenset[RoleType]:
        """返回沿分配关系可达的全部下属角色。"""
        return self._subordinates[self._require(role_type).role_type]

    def highest_of(self, role_types: Iterable[object]) -> RoleType:
        """返回权威最高的角色；层级相同按声明顺序取靠前者。"""
        definitions = [self._require(role_type) for role_type in role_types]
        if not definitions:
            raise ValueError("highest_of requires at least one role type")
        best = min(definitions, key=lambda item: (item.level, self._order[item.role_type]))
        return best.role_type

    def distance(self, a: object, b: object) -> int:
        """返回两个角色的层级距离（对称）。"""
        return abs(self.level_of(a) - self.level_of(b))

    def path_of(self, role_type: object) -> list[RoleType]:
        """返回从顶层角色到目标角色的分配链，仅用于前端面包屑展示。

        每一步在当前角色可分配、且仍能到达目标的角色中选权威最高者，
        层级相同按声明顺序决胜；层级严格递增保证循环必然结束。
        """
        target = self._require(role_type).role_type
        path = [self._root]
        current = self._root
        while current != target:
            candidates = [
                child
                for child in self._definitions[current].assignable_roles
                if child == target or target in self._subordinates[child]
            ]
            current = min(
                candidates,
                key=lambda child: (self._definitions[child].level, self._order[child]),
            )
            path.append(current)
        return path

    def roles_at_level(self, level: int) -> list[RoleType]:
        """返回指定层级的全部角色。"""
        return [role for role, definition in self._definitions.items() if definition.level == level]

    def visible_roles_for(self, role_type: object) -> list[RoleType]:
        """返回权威严格低于给定角色的全部角色（按层级排序）。"""
        level = self.level_of(role_type)
        visible = [role for role, definition in self._definitions.items() if definition.level > level]
        return sorted(visible, key=lambda role: (self._definitions[role].level, self._order[role]))

    def roles_with_permission(self, permission: str) -> list[RoleType]:
        """返回默认持有某权限点的角色。"""
        return [
            role
            for role, definition in self._definitions.items()
            if permission in definition.default_permissions
        ]


# ---- 默认层级表 ----

_CONTENT_MANAGEMENT = frozenset().union(
    actions_on("FORM_TEMPLATES", "VIEW", "CREATE", "EDIT", "DELETE"),
    actions_on("FORM_SUBMISSIONS", "VIEW", "CREATE", "EDIT", "MANAGE", "EXPORT"),
    actions_on("PUBLIC_CMS", "VIEW", "CREATE", "EDIT", "MANAGE"),
    actions_on("TEMPLATES", "VIEW", "CREATE", "EDIT"),
    actions_on("CMS", "VIEW", "EDIT"),
    actions_on("SUBMISSIONS", "VIEW", "CREATE", "EDIT", "MANAGE", "EXPORT"),
    {"MANAGE_PUBLIC_CONTENT"},
)

_ORGANIZATION_ADMIN = frozenset().union(
    crud("USERS"),
    crud("COURSES"),
    actions_on("COMPANIES", "VIEW", "EDIT"),
    actions_on("EMPLOYEES", "VIEW", "CREATE", "EDIT"),
    actions_on("TRAINERS", "VIEW", "CREATE", "EDIT"),
    actions_on("SCHEDULES", "VIEW", "CREATE", "EDIT"),
    actions_on("REPORTS", "VIEW", "EXPORT"),
    actions_on("ROLES", "VIEW", "CREATE", "EDIT"),
    {"ROLE_MANAGEMENT", "MANAGE_USERS", "ASSIGN_ROLES", "VIEW_ANALYTICS", "VIEW_HIERARCHY"},
    _CONTENT_MANAGEMENT,
)

_ALL_ROLES = frozenset(RoleType)

DEFAULT_ROLE_DEFINITIONS: tuple[RoleDefinition, ...] = (
    RoleDefinition(
        role_type=RoleType.SUPER_ADMIN,
        level=0,
        name="超级管理员",
        description="跨租户的完整系统访问权限",
        assignable_roles=_ALL_ROLES - {RoleType.SUPER_ADMIN},
        default_permissions=PERMISSION_CATALOG,
    ),
    RoleDefinition(
        role_type=RoleType.ADMIN,
        level=1,
        name="管理员",
        description="平台级完整管理权限",
        assignable_roles=_ALL_ROLES - {RoleType.SUPER_ADMIN, RoleType.ADMIN},
        default_permissions=PERMISSION_CATALOG - crud("TENANTS"),
    ),
    RoleDefinition(
        role_type=RoleType.TENANT_ADMIN,
        level=2,
        name="租户管理员",
        description="管理租户内的公司、人员与角色",
        assignable_roles=frozenset(
            {
                RoleType.COMPANY_ADMIN,
                RoleType.HR_MANAGER,
                RoleType.MANAGER,
                RoleType.TRAINER,
                RoleType.EMPLOYEE,
                RoleType.CONSULTANT,
                RoleType.AUDITOR,
            }
        ),
        default_permissions=_ORGANIZATION_ADMIN
        | {"TENANT_MANAGEMENT", "REVOKE_ROLES", "DELETE_ROLES", "CREATE_COMPANIES", "VIEW_ADMINISTRATION"},
    ),
    RoleDefinition(
        role_type=RoleType.COMPANY_ADMIN,
        level=3,
        name="公司管理员",
        description="管理本公司及其员工",
        assignable_roles=frozenset(
            {
                RoleType.HR_MANAGER,
                RoleType.MANAGER,
                RoleType.DEPARTMENT_HEAD,
                RoleType.TRAINER_COORDINATOR,
                RoleType.TRAINER,
                RoleType.EMPLOYEE,
            }
        ),
        default_permissions=_ORGANIZATION_ADMIN | actions_on("DOCUMENTS", "VIEW", "CREATE", "EDIT"),
    ),
    RoleDefinition(
        role_type=RoleType.HR_MANAGER,
        level=4,
        name="人事经理",
        description="人力资源管理",
        assignable_roles=frozenset({RoleType.TRAINER_COORDINATOR, RoleType.SUPERVISOR, RoleType.EMPLOYEE}),
        default_permissions=frozenset().union(
            actions_on("USERS", "VIEW", "CREATE", "EDIT"),
            crud("EMPLOYEES"),
            actions_on("TRAINERS", "VIEW", "CREATE", "EDIT"),
            actions_on("SCHEDULES", "VIEW", "CREATE", "EDIT"),
            actions_on("DOCUMENTS", "VIEW", "CREATE"),
            {"VIEW_COMPANIES", "VIEW_COURSES", "VIEW_REPORTS", "VIEW_ANALYTICS", "ROLE_MANAGEMENT", "ASSIGN_ROLES"},
        ),
    ),
    RoleDefinition(
        role_type=RoleType.MANAGER,
        level=4,
        name="经理",
        description="业务运营与协调",
        assignable_roles=frozenset(
            {RoleType.DEPARTMENT_HEAD, RoleType.TRAINER_COORDINATOR, RoleType.SUPERVISOR, RoleType.AUDITOR}
        ),
        default_permissions=frozenset().union(
            actions_on("USERS", "VIEW", "EDIT"),
            actions_on("EMPLOYEES", "VIEW", "EDIT"),
            actions_on("SCHEDULES", "VIEW", "CREATE", "EDIT"),
            actions_on("DOCUMENTS", "VIEW", "CREATE", "EDIT"),
            {"VIEW_COMPANIES", "VIEW_COURSES", "VIEW_TRAINERS", "VIEW_REPORTS", "VIEW_ANALYTICS", "ASSIGN_ROLES"},
        ),
    ),
    RoleDefinition(
        role_type=RoleType.DEPARTMENT_HEAD,
        level=5,
        name="部门负责人",
        description="管理指定部门",
        assignable_roles=frozenset({RoleType.SUPERVISOR, RoleType.COORDINATOR, RoleType.TRAINER}),
        default_permissions=frozenset().union(
            actions_on("EMPLOYEES", "VIEW", "CREATE", "EDIT"),
            actions_on("TRAINERS", "VIEW", "CREATE"),
            actions_on("COURSES", "VIEW", "CREATE", "EDIT"),
            actions_on("DOCUMENTS", "VIEW", "CREATE"),
            {"VIEW_SCHEDULES", "ASSIGN_ROLES"},
        ),
    ),
    RoleDefinition(
        role_type=RoleType.TRAINER_COORDINATOR,
        level=5,
        name="培训协调员",
        description="协调培训活动与培训师",
        assignable_roles=frozenset({RoleType.SENIOR_TRAINER, RoleType.TRAINER, RoleType.EXTERNAL_TRAINER}),
        default_permissions=frozenset().union(
            actions_on("TRAINERS", "VIEW", "CREATE", "EDIT"),
            actions_on("COURSES", "VIEW", "CREATE", "EDIT"),
            actions_on("SCHEDULES", "VIEW", "CREATE", "EDIT"),
            actions_on("DOCUMENTS", "VIEW", "CREATE"),
            {"ASSIGN_ROLES"},
        ),
    ),
    RoleDefinition(
        role_type=RoleType.SENIOR_TRAINER,
        level=6,
        name="高级培训师",
        description="高级培训与带教",
        assignable_roles=frozenset({RoleType.TRAINER, RoleType.EXTERNAL_TRAINER}),
        default_permissions=frozenset().union(
            actions_on("COURSES", "VIEW", "CREATE", "EDIT"),
            actions_on("SCHEDULES", "VIEW", "CREATE", "EDIT"),
            actions_on("DOCUMENTS", "VIEW", "CREATE"),
            {"VIEW_USERS", "VIEW_EMPLOYEES", "VIEW_TRAINERS", "VIEW_REPORTS"},
        ),
    ),
    RoleDefinition(
        role_type=RoleType.TRAINER,
        level=7,
        name="培训师",
        description="讲授课程与管理培训",
        assignable_roles=frozenset({RoleType.EMPLOYEE}),
        default_permissions=frozenset(
            {
                "VIEW_USERS",
                "VIEW_COURSES",
                "EDIT_COURSES",
                "VIEW_EMPLOYEES",
                "VIEW_SCHEDULES",
                "VIEW_REPORTS",
                "VIEW_DOCUMENTS",
                "CREATE_DOCUMENTS",
            }
        ),
    ),
    RoleDefinition(
        role_type=RoleType.EXTERNAL_TRAINER,
        level=7,
        name="外部培训师",
        description="外部专项培训",
        default_permissions=frozenset({"VIEW_COURSES", "VIEW_SCHEDULES", "VIEW_DOCUMENTS"}),
    ),
    RoleDefinition(
        role_type=RoleType.SUPERVISOR,
        level=6,
        name="主管",
        description="运营监督",
        assignable_roles=frozenset({RoleType.COORDINATOR, RoleType.OPERATOR, RoleType.EMPLOYEE}),
        default_permissions=frozenset(
            {"VIEW_EMPLOYEES", "EDIT_EMPLOYEES", "VIEW_COURSES", "VIEW_SCHEDULES", "VIEW_DOCUMENTS"}
        ),
    ),
    RoleDefinition(
        role_type=RoleType.COORDINATOR,
        level=7,
        name="协调员",
        description="日常活动协调",
        assignable_roles=frozenset({RoleType.OPERATOR, RoleType.EMPLOYEE}),
        default_permissions=frozenset({"VIEW_EMPLOYEES", "VIEW_COURSES", "VIEW_SCHEDULES", "VIEW_DOCUMENTS"}),
    ),
    RoleDefinition(
        role_type=RoleType.OPERATOR,
        level=8,
        name="操作员",
        description="基础操作",
        assignable_roles=frozenset({RoleType.EMPLOYEE}),
        default_permissions=frozenset({"VIEW_COURSES", "VIEW_DOCUMENTS"}),
    ),
    RoleDefinition(
        role_type=RoleType.EMPLOYEE,
        level=9,
        name="员工",
        description="基础功能访问",
        assignable_roles=frozenset({RoleType.VIEWER}),
        default_permissions=frozenset({"VIEW_COURSES", "VIEW_SCHEDULES", "VIEW_DOCUMENTS"}),
    ),
    RoleDefinition(
        role_type=RoleType.CONSULTANT,
        level=8,
        name="顾问",
        description="专项咨询",
        default_permissions=frozenset({"VIEW_COURSES", "VIEW_DOCUMENTS", "VIEW_REPORTS"}),
    ),
    RoleDefinition(
        role_type=RoleType.AUDITOR,
        level=6,
        name="审计员",
        description="检查与审计",
        default_permissions=frozenset({"VIEW_REPORTS", "VIEW_DOCUMENTS", "VIEW_EMPLOYEES"}),
    ),
    RoleDefinition(
        role_type=RoleType.VIEWER,
        level=10,
        name="只读用户",
        description="仅可查看",
        assignable_roles=frozenset({RoleType.GUEST}),
        default_permissions=frozenset({"VIEW_COURSES", "VIEW_SCHEDULES", "VIEW_REPORTS", "VIEW_DOCUMENTS"}),
    ),
    RoleDefinition(
        role_type=RoleType.GUEST,
        level=11,
        name="访客",
        description="受限访问",
        default_permissions=frozenset({"VIEW_COURSES"}),
    ),
)


def build_default_hierarchy() -> HierarchyIndex:
    """构建并校验默认层级表。"""
    return HierarchyIndex(DEFAULT_ROLE_DEFINITIONS)
