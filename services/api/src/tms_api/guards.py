"""请求级访问守卫。

守卫以 FastAPI 依赖工厂的形式提供，路由通过 `Depends(require_permission(...))` 组合使用。
约束：
1. 拒绝统一抛出带 {code, message, details} 的 HTTPException，由异常处理器渲染。
2. 拒绝信息只列出所需权限/角色，不透露其他人员的授予情况。
3. 守卫内部的任何意外异常都转换为 500 `<GUARD>_CHECK_ERROR`，不会逃逸到框架。
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
import logging
from typing import Any
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status

from tms_api.core.context import RequestContext
from tms_api.dependencies import (
    auth_required_error,
    get_assignment_store,
    get_permission_resolver,
    get_request_context,
    tenant_required_error,
)
from tms_api.models.enums import RoleType
from tms_api.services.assignments import RoleAssignmentStore
from tms_api.services.permission_codes import normalize_permission
from tms_api.services.resolver import PermissionResolver, is_unrestricted

logger = logging.getLogger("tms_api.guards")

ADMIN_ROLE_TYPES = (RoleType.SUPER_ADMIN, RoleType.ADMIN, RoleType.TENANT_ADMIN)
# 可访问租户下任意公司的角色。
COMPANY_WIDE_ROLE_TYPES = frozenset(ADMIN_ROLE_TYPES)


@dataclass(frozen=True)
class VerifiedPermissions:
    """通过校验的权限信息，挂在 request.state.verified_permissions。"""

    verified: tuple[str, ...]
    has_all: bool
    has_any: bool
    bypassed_as_admin: bool = False


def _denial(status_code: int, code: str, message: str, **details: Any) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message, "details": details})


def _check_error(code: str) -> HTTPException:
    return _denial(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        code,
        "权限校验过程中发生内部错误。",
        reason="check_failed",
    )


def _as_list(values: str | Iterable[str]) -> list[str]:
    if isinstance(values, str):
        return [values]
    return list(values)


def _company_from_path(request: Request) -> str | None:
    return request.path_params.get("company_id")


def require_permission(
    permissions: str | Iterable[str],
    *,
    resource: str | None = None,
    action: str | None = None,
    require_all: bool = False,
    get_resource_id: Callable[[Request], UUID | None] | None = None,
    get_company_id: Callable[[Request], UUID | None] | None = None,
):
    """要求当前人员持有权限点（默认任一即可）。"""
    required = [normalize_permission(item) for item in _as_list(permissions)]

    def _dep(
        request: Request,
        ctx: RequestContext = Depends(get_request_context),
        resolver: PermissionResolver = Depends(get_permission_resolver),
    ) -> RequestContext:
        if ctx.actor_id is None:
            logger.warning("permission check without actor path=%s", request.url.path)
            raise auth_required_error()
        try:
            # 直接使用请求附带的角色信息判断管理员放行，不再查库。
            if is_unrestricted(ctx.role_hints):
                logger.info(
                    "admin bypassed permission check actor_id=%s required=%s",
                    ctx.actor_id,
                    required,
                )
                request.state.verified_permissions = VerifiedPermissions(
                    verified=tuple(required),
                    has_all=True,
                    has_any=True,
                    bypassed_as_admin=True,
                )
                return ctx
            if ctx.tenant_id is None:
                raise tenant_required_error()

            resource_id = get_resource_id(request) if get_resource_id else None
            company_id = get_company_id(request) if get_company_id else None
            checks = [
                resolver.has_permission(
                    ctx.actor_id,
                    permission,
                    tenant_id=ctx.tenant_id,
                    company_id=company_id,
                    resource_id=resource_id,
                )
                for permission in required
            ]
            granted = all(checks) if require_all else any(checks)
            if not granted:
                logger.warning(
                    "permission denied actor_id=%s tenant_id=%s required=%s resource=%s action=%s",
                    ctx.actor_id,
                    ctx.tenant_id,
                    required,
                    resource,
                    action,
                )
                raise _denial(
                    status.HTTP_403_FORBIDDEN,
                    "PERMISSION_DENIED",
                    "权限不足。",
                    required_permissions=required,
                    require_all=require_all,
                )
            request.state.verified_permissions = VerifiedPermissions(
                verified=tuple(required),
                has_all=all(checks),
                has_any=any(checks),
            )
            return ctx
        except HTTPException:
            raise
        except Exception as exc:
            logger.exception("permission check failed actor_id=%s required=%s", ctx.actor_id, required)
            raise _check_error("PERMISSION_CHECK_ERROR") from exc

    return _dep


def require_role(roles: str | Iterable[str], *, require_all: bool = False):
    """要求当前人员在租户内持有指定角色（默认任一即可）。"""
    required = [str(role).strip().upper() for role in _as_list(roles)]

    def _dep(
        request: Request,
        ctx: RequestContext = Depends(get_request_context),
        store: RoleAssignmentStore = Depends(get_assignment_store),
    ) -> RequestContext:
        if ctx.actor_id is None:
            raise auth_required_error()
        try:
            assignments = store.list_roles(ctx.actor_id, ctx.tenant_id)
            role_types = list(dict.fromkeys(view.role_type for view in assignments))
            matched = [role in role_types for role in required]
            if not (all(matched) if require_all else any(matched)):
                logger.warning(
                    "role denied actor_id=%s tenant_id=%s required=%s",
                    ctx.actor_id,
                    ctx.tenant_id,
                    required,
                )
                raise _denial(
                    status.HTTP_403_FORBIDDEN,
                    "ROLE_DENIED",
                    "角色权限不足。",
                    required_roles=required,
                    require_all=require_all,
                )
            request.state.user_roles = assignments
            request.state.user_role_types = role_types
            return ctx
        except HTTPException:
            raise
        except Exception as exc:
            logger.exception("role check failed actor_id=%s required=%s", ctx.actor_id, required)
            raise _check_error("ROLE_CHECK_ERROR") from exc

    return _dep


def require_admin():
    """要求平台或租户管理员。"""
    return require_role(ADMIN_ROLE_TYPES)


def require_super_admin():
    return require_role(RoleType.SUPER_ADMIN)


def require_company_access(get_company_id: Callable[[Request], Any] | None = None):
    """要求当前人员可访问指定公司：管理员角色，或持有该公司范围的分配。

    默认从路径参数 `company_id` 读取公司 ID。
    """
    resolve_company = get_company_id or _company_from_path

    def _dep(
        request: Request,
        ctx: RequestContext = Depends(get_request_context),
        store: RoleAssignmentStore = Depends(get_assignment_store),
    ) -> RequestContext:
        if ctx.actor_id is None or ctx.tenant_id is None:
            raise auth_required_error()
        try:
            raw_company = resolve_company(request)
            try:
                company_id = raw_company if isinstance(raw_company, UUID) else UUID(str(raw_company))
            except ValueError:
                company_id = None
            if raw_company is None or company_id is None:
                raise _denial(
                    status.HTTP_400_BAD_REQUEST,
                    "COMPANY_ID_REQUIRED",
                    "缺少公司 ID。",
                    reason="missing_company_id",
                )

            assignments = store.list_roles(ctx.actor_id, ctx.tenant_id)
            has_global_access = any(view.role_type in COMPANY_WIDE_ROLE_TYPES for view in assignments)
            if not has_global_access and not any(view.company_id == company_id for view in assignments):
                logger.warning(
                    "company access denied actor_id=%s tenant_id=%s company_id=%s",
                    ctx.actor_id,
                    ctx.tenant_id,
                    company_id,
                )
                raise _denial(
                    status.HTTP_403_FORBIDDEN,
                    "COMPANY_ACCESS_DENIED",
                    "无权访问该公司。",
                    company_id=str(company_id),
                )
            request.state.company_id = company_id
            request.state.has_global_access = has_global_access
            return ctx
        except HTTPException:
            raise
        except Exception as exc:
            logger.exception("company access check failed actor_id=%s", ctx.actor_id)
            raise _check_error("COMPANY_ACCESS_CHECK_ERROR") from exc

    return _dep


def require_access(
    *,
    permissions: str | Iterable[str] | None = None,
    roles: str | Iterable[str] | None = None,
    require_all_permissions: bool = False,
    require_all_roles: bool = False,
):
    """组合守卫：先校验权限点，再校验角色，任一失败即中止。"""
    permission_guard = (
        require_permission(permissions, require_all=require_all_permissions) if permissions else None
    )
    role_guard = require_role(roles, require_all=require_all_roles) if roles else None

    def _dep(
        request: Request,
        ctx: RequestContext = Depends(get_request_context),
        resolver: PermissionResolver = Depends(get_permission_resolver),
        store: RoleAssignmentStore = Depends(get_assignment_store),
    ) -> RequestContext:
        if permission_guard is not None:
            permission_guard(request, ctx, resolver)
        if role_guard is not None:
            role_guard(request, ctx, store)
        return ctx

    return _dep
