"""路由模块导出集合。"""

from . import access, health, hierarchy, roles

__all__ = [
    "access",
    "health",
    "hierarchy",
    "roles",
]
