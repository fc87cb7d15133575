"""应用中间件注册。"""

from time import perf_counter
import uuid
from uuid import UUID

from fastapi import FastAPI, Request

from tms_api.core.config import get_settings
from tms_api.core.context import RequestContext


async def request_id_middleware(request: Request, call_next):
    """注入请求追踪 ID，并通过响应头返回。"""
    request.state.request_id = str(uuid.uuid4())
    request.state.request_started_at = perf_counter()
    response = await call_next(request)
    response.headers["X-Request-Id"] = request.state.request_id
    elapsed = perf_counter() - request.state.request_started_at
    response.headers["X-Process-Time-Ms"] = str(round(elapsed * 1000, 2))
    return response


def _parse_uuid(raw: str | None) -> UUID | None:
    if not raw or not raw.strip():
        return None
    try:
        return UUID(raw.strip())
    except ValueError:
        return None


def _parse_roles(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(dict.fromkeys(item.strip().upper() for item in raw.split(",") if item.strip()))


def read_actor_context(request: Request) -> RequestContext:
    """从网关透传的请求头解析人员上下文；非法 UUID 视为缺失。"""
    settings = get_settings()
    global_role = request.headers.get(settings.global_role_header, "").strip().upper() or None
    return RequestContext(
        actor_id=_parse_uuid(request.headers.get(settings.actor_header)),
        tenant_id=_parse_uuid(request.headers.get(settings.tenant_header)),
        roles=_parse_roles(request.headers.get(settings.roles_header)),
        global_role=global_role,
    )


async def actor_context_middleware(request: Request, call_next):
    """挂载人员上下文，认证由上游网关完成。"""
    request.state.actor_context = read_actor_context(request)
    return await call_next(request)


def register_middlewares(app: FastAPI) -> None:
    """集中注册中间件（后注册的先执行）。"""
    app.middleware("http")(actor_context_middleware)
    app.middleware("http")(request_id_middleware)
