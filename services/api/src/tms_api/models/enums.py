"""领域枚举定义。"""

from enum import StrEnum


class RoleType(StrEnum):
    """系统内置角色类型。

    声明顺序即权威从高到低的优先级顺序，层级相同时按此顺序决胜。
    """

    SUPER_ADMIN = "SUPER_ADMIN"  # 超级管理员，跨租户全局权限。
    ADMIN = "ADMIN"  # 平台管理员，全局管理权限。
    TENANT_ADMIN = "TENANT_ADMIN"  # 租户管理员。
    COMPANY_ADMIN = "COMPANY_ADMIN"  # 公司管理员，管理本公司及员工。
    HR_MANAGER = "HR_MANAGER"  # 人事经理。
    MANAGER = "MANAGER"  # 业务经理。
    DEPARTMENT_HEAD = "DEPARTMENT_HEAD"  # 部门负责人。
    TRAINER_COORDINATOR = "TRAINER_COORDINATOR"  # 培训协调员。
    SENIOR_TRAINER = "SENIOR_TRAINER"  # 高级培训师。
    TRAINER = "TRAINER"  # 培训师。
    EXTERNAL_TRAINER = "EXTERNAL_TRAINER"  # 外部培训师。
    SUPERVISOR = "SUPERVISOR"  # 主管。
    COORDINATOR = "COORDINATOR"  # 协调员。
    OPERATOR = "OPERATOR"  # 操作员。
    EMPLOYEE = "EMPLOYEE"  # 普通员工。
    CONSULTANT = "CONSULTANT"  # 顾问。
    AUDITOR = "AUDITOR"  # 审计员。
    VIEWER = "VIEWER"  # 只读用户。
    GUEST = "GUEST"  # 访客。


class RoleScope(StrEnum):
    """角色分配生效范围。"""

    GLOBAL = "global"  # 不受租户限制。
    TENANT = "tenant"  # 限定在单个租户内。
    COMPANY = "company"  # 限定在租户下的某个公司。
    DEPARTMENT = "department"  # 限定在某个部门。


class PermissionScope(StrEnum):
    """高级权限的作用范围。"""

    GLOBAL = "global"  # 无条件授予。
    TENANT = "tenant"  # 租户范围。
    COMPANY = "company"  # 公司范围，通常配合条件使用。


class PersonStatus(StrEnum):
    """人员账号状态。"""

    ACTIVE = "active"  # 正常可用。
    INACTIVE = "inactive"  # 已停用，不再参与授权。
