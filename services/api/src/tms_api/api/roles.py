"""角色分配接口。"""

from dataclasses import asdict
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, Request, status
from sqlalchemy.orm import Session

from tms_api.core.config import get_settings
from tms_api.core.context import RequestContext
from tms_api.core.errors import AssignmentNotAllowed
from tms_api.db.session import get_db
from tms_api.dependencies import (
    get_assignment_store,
    get_hierarchy,
    get_permission_resolver,
    get_tenant_context,
)
from tms_api.guards import require_admin, require_company_access, require_permission, require_super_admin
from tms_api.schemas.common import ErrorResponse, SuccessResponse
from tms_api.schemas.responses import (
    EffectivePermissionsData,
    RevokeResultData,
    RoleAssignmentData,
    SweepResultData,
)
from tms_api.schemas.role import AssignmentPermissionUpdateRequest, RoleAssignRequest, RoleRevokeRequest
from tms_api.services.assignments import AdvancedGrant, AssignmentView, RoleAssignmentStore
from tms_api.services.hierarchy import HierarchyIndex
from tms_api.services.resolver import PermissionResolver
from tms_api.services.stats import detailed_statistics, expiration_report, permission_usage
from tms_api.utils.response import success

router = APIRouter(prefix="/roles", tags=["roles"])

_DENIED = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
}


def _assignment_data(view: AssignmentView) -> dict[str, Any]:
    return asdict(view)


@router.get(
    "/me",
    summary="查询我的角色",
    description="返回当前人员在当前租户内有效（未停用、未过期）的角色分配，含全局角色。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[RoleAssignmentData]],
    responses=_DENIED,
)
def list_my_roles(
    request: Request,
    ctx: RequestContext = Depends(get_tenant_context),
    store: RoleAssignmentStore = Depends(get_assignment_store),
):
    views = store.list_roles(ctx.actor_id, ctx.tenant_id)
    return success(request, [_assignment_data(view) for view in views])


@router.get(
    "/me/primary",
    summary="查询我的主角色",
    description="按权威从高到低选出当前租户内的主角色，没有任何分配时返回空。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[RoleAssignmentData | None],
    responses=_DENIED,
)
def get_my_primary_role(
    request: Request,
    ctx: RequestContext = Depends(get_tenant_context),
    store: RoleAssignmentStore = Depends(get_assignment_store),
):
    view = store.primary_role_of(ctx.actor_id, ctx.tenant_id)
    return success(request, _assignment_data(view) if view else None)


@router.get(
    "/me/permissions",
    summary="查询我的有效权限",
    description="默认权限、显式授予、高级权限派生权限点与自定义角色权限的并集。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[EffectivePermissionsData],
    responses=_DENIED,
)
def get_my_permissions(
    request: Request,
    ctx: RequestContext = Depends(get_tenant_context),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    permissions = resolver.get_user_permissions(ctx.actor_id, ctx.tenant_id)
    return success(
        request,
        {"actor_id": ctx.actor_id, "tenant_id": ctx.tenant_id, "permissions": sorted(permissions)},
    )


@router.post(
    "",
    summary="分配角色",
    description="当前人员的最高角色必须能直接分配目标角色；同一人员/租户/角色/公司重复分配只刷新。",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessResponse[RoleAssignmentData],
    responses={**_DENIED, 404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    dependencies=[Depends(require_permission("ASSIGN_ROLES"))],
)
def assign_role(
    payload: RoleAssignRequest,
    request: Request,
    ctx: RequestContext = Depends(get_tenant_context),
    store: RoleAssignmentStore = Depends(get_assignment_store),
    db: Session = Depends(get_db),
):
    view = store.assign_with_authority(
        ctx.actor_id,
        payload.actor_id,
        ctx.tenant_id,
        payload.role_type,
        company_id=payload.company_id,
        department_id=payload.department_id,
        expires_at=payload.expires_at,
        custom_permissions=payload.custom_permissions,
        custom_role_id=payload.custom_role_id,
        is_primary=payload.is_primary,
    )
    db.commit()
    return success(request, _assignment_data(view))


@router.post(
    "/revoke",
    summary="撤销角色",
    description="软停用匹配的分配；未指定公司时撤销该角色在全部公司的分配。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[RevokeResultData],
    responses=_DENIED,
    dependencies=[Depends(require_permission("REVOKE_ROLES"))],
)
def revoke_role(
    payload: RoleRevokeRequest,
    request: Request,
    ctx: RequestContext = Depends(get_tenant_context),
    store: RoleAssignmentStore = Depends(get_assignment_store),
    hierarchy: HierarchyIndex = Depends(get_hierarchy),
    db: Session = Depends(get_db),
):
    grantor_role = store.highest_role_type(ctx.actor_id, ctx.tenant_id)
    if grantor_role is None or not hierarchy.can_manage(grantor_role, payload.role_type):
        raise AssignmentNotAllowed(payload.role_type, grantor_role)
    revoked = store.revoke(payload.actor_id, ctx.tenant_id, payload.role_type, payload.company_id)
    db.commit()
    return success(request, {"revoked": revoked})


@router.get(
    "/holders/{role_type}",
    summary="查询角色持有人",
    description="反查当前租户内持有指定角色的有效分配，可按公司过滤。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[RoleAssignmentData]],
    responses=_DENIED,
    dependencies=[Depends(require_permission("VIEW_ROLES"))],
)
def list_role_holders(
    request: Request,
    role_type: str = Path(..., description="角色类型。"),
    company_id: UUID | None = Query(default=None, description="按公司过滤。"),
    ctx: RequestContext = Depends(get_tenant_context),
    store: RoleAssignmentStore = Depends(get_assignment_store),
):
    views = store.list_by_role(role_type.strip().upper(), ctx.tenant_id, company_id)
    return success(request, [_assignment_data(view) for view in views])


@router.get(
    "/companies/{company_id}/assignments",
    summary="查询公司内角色分配",
    description="管理员或持有该公司范围分配的人员可查看。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[RoleAssignmentData]],
    responses=_DENIED,
    dependencies=[Depends(require_company_access())],
)
def list_company_assignments(
    request: Request,
    company_id: UUID = Path(..., description="公司 ID。"),
    ctx: RequestContext = Depends(get_tenant_context),
    store: RoleAssignmentStore = Depends(get_assignment_store),
):
    views = store.list_company_assignments(ctx.tenant_id, company_id)
    return success(
        request,
        [_assignment_data(view) for view in views],
        meta={"has_global_access": request.state.has_global_access},
    )


@router.put(
    "/assignments/{assignment_id}/permissions",
    summary="更新分配权限",
    description="覆盖分配上的显式权限点和/或高级权限，要求当前人员权威不低于该分配的角色。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[RoleAssignmentData],
    responses={**_DENIED, 404: {"model": ErrorResponse}},
    dependencies=[Depends(require_permission("ASSIGN_ROLES"))],
)
def update_assignment_permissions(
    payload: AssignmentPermissionUpdateRequest,
    request: Request,
    assignment_id: UUID = Path(..., description="分配 ID。"),
    ctx: RequestContext = Depends(get_tenant_context),
    store: RoleAssignmentStore = Depends(get_assignment_store),
    db: Session = Depends(get_db),
):
    advanced = None
    if payload.advanced_permissions is not None:
        advanced = [
            AdvancedGrant(
                resource=item.resource,
                action=item.action,
                scope=item.scope,
                allowed_fields=tuple(item.allowed_fields),
                conditions=item.conditions,
            )
            for item in payload.advanced_permissions
        ]
    view = store.update_assignment_permissions_as(
        ctx.actor_id,
        assignment_id,
        permissions=payload.permission_codes,
        advanced=advanced,
    )
    db.commit()
    return success(request, _assignment_data(view))


@router.post(
    "/sweep",
    summary="清理过期分配",
    description="停用全部已过期但仍有效的分配；幂等，可与 worker 并发执行。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[SweepResultData],
    responses=_DENIED,
    dependencies=[Depends(require_super_admin())],
)
def sweep_expired_assignments(
    request: Request,
    store: RoleAssignmentStore = Depends(get_assignment_store),
    db: Session = Depends(get_db),
):
    deactivated = store.sweep_expired()
    db.commit()
    return success(request, {"deactivated": deactivated})


@router.get(
    "/statistics",
    summary="角色统计",
    description="角色分布、有效/过期/停用汇总、按公司拆分以及权限使用情况。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[dict[str, Any]],
    responses=_DENIED,
    dependencies=[Depends(require_admin())],
)
def get_role_statistics(
    request: Request,
    ctx: RequestContext = Depends(get_tenant_context),
    store: RoleAssignmentStore = Depends(get_assignment_store),
    db: Session = Depends(get_db),
):
    data = detailed_statistics(db, tenant_id=ctx.tenant_id, now=store.now())
    data["permission_usage"] = permission_usage(db, tenant_id=ctx.tenant_id)
    return success(request, data)


@router.get(
    "/expirations",
    summary="过期分配报告",
    description="列出已过期（待清理）与即将过期的分配。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[dict[str, Any]],
    responses=_DENIED,
    dependencies=[Depends(require_admin())],
)
def get_expiration_report(
    request: Request,
    days_ahead: int | None = Query(default=None, ge=1, le=365, description="即将过期窗口（天）。"),
    ctx: RequestContext = Depends(get_tenant_context),
    store: RoleAssignmentStore = Depends(get_assignment_store),
    db: Session = Depends(get_db),
):
    window = days_ahead or get_settings().expiring_window_days
    return success(
        request,
        expiration_report(db, tenant_id=ctx.tenant_id, now=store.now(), days_ahead=window),
    )
