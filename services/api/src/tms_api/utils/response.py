"""响应信封构造。

成功与失败共用 request_id；meta/details 中回显调用方租户与人员，
便于网关日志与权限拒绝记录对齐。
"""

from datetime import datetime, timezone
from time import perf_counter
from typing import Any

from fastapi import Request

from tms_api.core.context import RequestContext

DEFAULT_ERROR_MESSAGE = "internal server error"


def _iso_utc() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _caller(request: Request) -> dict[str, str | None]:
    # 依赖单测直接构造请求时中间件未执行，上下文为空。
    ctx = getattr(request.state, "actor_context", None) or RequestContext()
    return {
        "tenant_id": str(ctx.tenant_id) if ctx.tenant_id else None,
        "actor_id": str(ctx.actor_id) if ctx.actor_id else None,
    }


def _trace(request: Request) -> dict[str, Any]:
    return {
        "method": request.method.upper(),
        "path": request.url.path,
        "timestamp": _iso_utc(),
        **_caller(request),
    }


def success(request: Request, data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    """成功信封：data 为业务主体，meta 带请求轨迹与耗时。"""
    started = getattr(request.state, "request_started_at", None)
    envelope_meta = _trace(request)
    envelope_meta["process_ms"] = int((perf_counter() - started) * 1000) if isinstance(started, float) else None
    envelope_meta.update(meta or {})
    return {"request_id": getattr(request.state, "request_id", ""), "data": data, "meta": envelope_meta}


def error_payload(
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """失败信封；details 合并请求轨迹与拒绝原因（所需权限、角色等）。"""
    merged = _trace(request)
    merged.update(details or {})
    return {
        "request_id": getattr(request.state, "request_id", ""),
        "error": {"code": code, "message": message, "details": merged},
    }
