"""FastAPI 应用入口点。"""

import logging

from fastapi import FastAPI

from tms_api.api.router import api_router
from tms_api.core.config import get_settings
from tms_api.exceptions import register_exception_handlers
from tms_api.middlewares import register_middlewares
from tms_api.services.hierarchy import HierarchyIndex, build_default_hierarchy

settings = get_settings()
logger = logging.getLogger("tms_api")


def _setup_logging() -> None:
    """初始化日志格式。"""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(hierarchy: HierarchyIndex | None = None) -> FastAPI:
    """创建并配置 FastAPI 应用实例。

    层级索引在此构建并校验，配置不一致时直接抛出 HierarchyConfigError 终止启动。
    """
    _setup_logging()
    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        debug=settings.app_debug,
        description=(
            "多租户角色与权限判定服务。\n\n"
            "所有业务接口统一返回：`{request_id, data, meta}`。\n"
            "认证由上游网关完成，人员与租户上下文通过 `X-Actor-Id` / `X-Tenant-Id` 请求头透传。"
        ),
        openapi_tags=[
            {"name": "health", "description": "服务存活与就绪探针。"},
            {"name": "roles", "description": "角色分配、撤销、查询与统计。"},
            {"name": "hierarchy", "description": "角色层级表与可分配角色查询。"},
            {"name": "access", "description": "运行时权限判定（无副作用）。"},
        ],
    )
    app.state.hierarchy = hierarchy or build_default_hierarchy()
    logger.info("role hierarchy loaded roles=%s root=%s", len(app.state.hierarchy.role_types), app.state.hierarchy.root)

    register_middlewares(app)
    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()
