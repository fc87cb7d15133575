"""权限引擎领域异常。

分类：
1. 输入错误（未知角色、人员不存在、越权分配）：由接口层转换为结构化拒绝。
2. 持久化错误：统一包装为 PersistenceError，不向调用方泄露内部细节。
3. 配置错误：层级定义不一致，在启动阶段直接失败。
"""


class RoleEngineError(Exception):
    """权限引擎异常基类。"""

    code = "ROLE_ENGINE_ERROR"


class UnknownRoleType(RoleEngineError, ValueError):
    """角色类型未在层级表中注册。"""

    code = "UNKNOWN_ROLE_TYPE"

    def __init__(self, role_type: object):
        super().__init__(f"unknown role type: {role_type}")
        self.role_type = role_type


class HierarchyConfigError(RoleEngineError):
    """层级定义存在环、越级或引用缺失，属于启动期致命错误。"""

    code = "HIERARCHY_CONFIG_ERROR"


class ActorNotFound(RoleEngineError):
    """人员不存在或不属于目标租户。"""

    code = "ACTOR_NOT_FOUND"

    def __init__(self, actor_id: object, tenant_id: object = None):
        super().__init__(f"actor {actor_id} not found in tenant {tenant_id}")
        self.actor_id = actor_id
        self.tenant_id = tenant_id


class AssignmentNotFound(RoleEngineError):
    """角色分配记录不存在。"""

    code = "ASSIGNMENT_NOT_FOUND"

    def __init__(self, assignment_id: object):
        super().__init__(f"role assignment {assignment_id} not found")
        self.assignment_id = assignment_id


class AssignmentNotAllowed(RoleEngineError):
    """分配人权威不足，不能分配或修改目标角色。"""

    code = "ASSIGNMENT_NOT_ALLOWED"

    def __init__(self, target_role: object, grantor_role: object = None):
        super().__init__(f"role {grantor_role} cannot grant or manage role {target_role}")
        self.target_role = target_role
        self.grantor_role = grantor_role


class PersistenceError(RoleEngineError):
    """存储层连接、超时或约束异常。"""

    code = "PERSISTENCE_ERROR"

    def __init__(self, operation: str):
        super().__init__(f"persistence failure during {operation}")
        self.operation = operation
