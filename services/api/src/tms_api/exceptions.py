"""应用异常处理注册。"""

import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tms_api.core.errors import (
    ActorNotFound,
    AssignmentNotAllowed,
    AssignmentNotFound,
    PersistenceError,
    RoleEngineError,
    UnknownRoleType,
)
from tms_api.utils.response import DEFAULT_ERROR_MESSAGE, error_payload

logger = logging.getLogger("tms_api.exceptions")

_DEFAULT_CODE_BY_STATUS = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_409_CONFLICT: "CONFLICT",
    status.HTTP_422_UNPROCESSABLE_CONTENT: "VALIDATION_ERROR",
}

_DEFAULT_MESSAGE_BY_STATUS = {
    status.HTTP_400_BAD_REQUEST: "请求参数不合法。",
    status.HTTP_401_UNAUTHORIZED: "未认证或缺少人员上下文。",
    status.HTTP_403_FORBIDDEN: "无权限访问该资源。",
    status.HTTP_404_NOT_FOUND: "请求资源不存在。",
    status.HTTP_409_CONFLICT: "请求与当前数据状态冲突。",
    status.HTTP_422_UNPROCESSABLE_CONTENT: "请求参数校验失败。",
}

_SUGGESTION_BY_STATUS = {
    status.HTTP_401_UNAUTHORIZED: "请确认网关已透传当前人员 ID。",
    status.HTTP_403_FORBIDDEN: "请确认当前人员的角色分配及租户、公司上下文是否正确。",
    status.HTTP_404_NOT_FOUND: "请确认资源 ID 是否正确，或资源是否已被停用。",
    status.HTTP_422_UNPROCESSABLE_CONTENT: "请根据错误字段提示修正请求参数后重试。",
}

# 领域异常到 HTTP 状态码的映射，未列出的领域异常按 500 处理。
_DOMAIN_STATUS = (
    (UnknownRoleType, status.HTTP_400_BAD_REQUEST),
    (ActorNotFound, status.HTTP_404_NOT_FOUND),
    (AssignmentNotFound, status.HTTP_404_NOT_FOUND),
    (AssignmentNotAllowed, status.HTTP_403_FORBIDDEN),
)


def _base_details(status_code: int, reason: str) -> dict[str, object]:
    return {
        "status_code": status_code,
        "reason": reason,
        "suggestion": _SUGGESTION_BY_STATUS.get(status_code, "请稍后重试，若持续失败请联系管理员。"),
    }


def _parse_http_detail(detail: object, status_code: int) -> tuple[str, str, dict[str, object]]:
    code = _DEFAULT_CODE_BY_STATUS.get(status_code, "HTTP_ERROR")
    message = _DEFAULT_MESSAGE_BY_STATUS.get(status_code, "请求处理失败。")
    details = _base_details(status_code, code.lower())

    if isinstance(detail, dict):
        code = str(detail.get("code") or code)
        message = str(detail.get("message") or detail.get("detail") or message)
        raw_details = detail.get("details")
        if isinstance(raw_details, dict):
            details.update(raw_details)
        elif raw_details is not None:
            details["details"] = raw_details
        for key, value in detail.items():
            if key in {"code", "message", "details"}:
                continue
            details[key] = value
        return code, message, details

    if isinstance(detail, str):
        return code, detail, details

    if detail is not None:
        details["detail"] = detail
    return code, message, details


async def http_exception_handler(request: Request, exc: HTTPException):
    """将协议异常（含守卫拒绝）统一包装为标准错误结构。"""
    code, message, details = _parse_http_detail(exc.detail, exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(request, code=code, message=message, details=details),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """统一处理请求参数校验错误。"""
    normalized_errors = [
        {
            "field": ".".join(str(item) for item in err.get("loc", []) if item != "body"),
            "message": err.get("msg"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    details = _base_details(status.HTTP_422_UNPROCESSABLE_CONTENT, "validation_error")
    details["errors"] = normalized_errors
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
        content=error_payload(request, code="VALIDATION_ERROR", message="请求参数校验失败。", details=details),
    )


async def role_engine_exception_handler(request: Request, exc: RoleEngineError):
    """渲染领域异常；存储层与配置类异常不向调用方暴露内部细节。"""
    status_code = next(
        (code for error_type, code in _DOMAIN_STATUS if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if status_code == status.HTTP_500_INTERNAL_SERVER_ERROR:
        if not isinstance(exc, PersistenceError):
            logger.error("unhandled role engine error code=%s error=%s", exc.code, exc)
        return JSONResponse(
            status_code=status_code,
            content=error_payload(
                request,
                code=exc.code,
                message=DEFAULT_ERROR_MESSAGE,
                details=_base_details(status_code, "internal_failure"),
            ),
        )
    return JSONResponse(
        status_code=status_code,
        content=error_payload(
            request,
            code=exc.code,
            message=str(exc),
            details=_base_details(status_code, exc.code.lower()),
        ),
    )


async def unexpected_exception_handler(request: Request, exc: Exception):
    """处理未捕获异常，避免内部细节泄露。"""
    logger.exception("unexpected error path=%s", request.url.path, exc_info=exc)
    details = _base_details(status.HTTP_500_INTERNAL_SERVER_ERROR, "unexpected_exception")
    details["suggestion"] = "请稍后重试，若持续失败请联系管理员并提供 request_id。"
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_payload(request, code="INTERNAL_ERROR", message=DEFAULT_ERROR_MESSAGE, details=details),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """集中注册异常处理器。"""
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(RoleEngineError)(role_engine_exception_handler)
    app.exception_handler(Exception)(unexpected_exception_handler)
