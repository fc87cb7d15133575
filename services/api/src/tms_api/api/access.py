"""运行时权限判定接口（无副作用）。"""

from fastapi import APIRouter, Depends, Request, status

from tms_api.core.context import RequestContext
from tms_api.dependencies import get_permission_resolver, get_tenant_context
from tms_api.schemas.common import ErrorResponse, SuccessResponse
from tms_api.schemas.responses import DataFilterData, PermissionCheckData, ResourceAccessData
from tms_api.schemas.role import DataFilterRequest, PermissionCheckRequest, ResourceAccessRequest
from tms_api.services.resolver import PermissionResolver
from tms_api.utils.response import success

router = APIRouter(prefix="/access", tags=["access"])

_ERRORS = {400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 422: {"model": ErrorResponse}}


@router.post(
    "/check",
    summary="判定权限点",
    description="逐个判定当前人员在当前租户（及可选公司）下是否持有权限点。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[PermissionCheckData],
    responses=_ERRORS,
)
def check_permissions(
    payload: PermissionCheckRequest,
    request: Request,
    ctx: RequestContext = Depends(get_tenant_context),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    results = {
        permission: resolver.has_permission(
            ctx.actor_id,
            permission,
            tenant_id=ctx.tenant_id,
            company_id=payload.company_id,
            resource_id=payload.resource_id,
        )
        for permission in payload.permissions
    }
    allowed = all(results.values()) if payload.require_all else any(results.values())
    return success(request, {"allowed": allowed, "results": results})


@router.post(
    "/resource",
    summary="判定记录级访问",
    description="结合高级权限的作用范围与条件判定能否访问指定记录。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[ResourceAccessData],
    responses=_ERRORS,
)
def check_resource_access(
    payload: ResourceAccessRequest,
    request: Request,
    ctx: RequestContext = Depends(get_tenant_context),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    allowed = resolver.can_access_resource(
        ctx.actor_id,
        payload.resource,
        payload.resource_id,
        payload.action,
        ctx.tenant_id,
    )
    return success(request, {"allowed": allowed})


@router.post(
    "/filter",
    summary="按权限裁剪数据",
    description="返回当前人员可见的字段；无任何权限时 data 为空。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[DataFilterData],
    responses=_ERRORS,
)
def filter_data(
    payload: DataFilterRequest,
    request: Request,
    ctx: RequestContext = Depends(get_tenant_context),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    filtered = resolver.filter_data_by_permissions(
        ctx.actor_id,
        payload.resource,
        payload.action,
        payload.data,
        ctx.tenant_id,
    )
    return success(request, {"data": filtered})
