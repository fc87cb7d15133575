"""请求级人员上下文。"""

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class RequestContext:
    """请求上下文。

    由上游网关认证后透传，路由与守卫统一以此为输入，不再重复解析请求头。
    """

    # 当前请求人员 ID，缺失表示未认证。
    actor_id: UUID | None = None
    # 当前请求租户 ID。
    tenant_id: UUID | None = None
    # 网关附带的角色类型列表，仅用于管理员快速放行判断。
    roles: tuple[str, ...] = ()
    # 人员全局角色属性。
    global_role: str | None = None

    @property
    def role_hints(self) -> tuple[str, ...]:
        """请求附带的全部角色（含全局角色）。"""
        if self.global_role:
            return (*self.roles, self.global_role)
        return self.roles
