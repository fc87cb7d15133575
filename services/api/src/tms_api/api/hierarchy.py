"""角色层级接口。"""

from fastapi import APIRouter, Depends, Path, Request, status

from tms_api.core.context import RequestContext
from tms_api.dependencies import get_actor_context, get_assignment_store, get_hierarchy
from tms_api.guards import require_admin
from tms_api.schemas.common import ErrorResponse, SuccessResponse
from tms_api.schemas.responses import (
    AssignableRolesData,
    PermissionCatalogData,
    RoleDefinitionData,
    RoleDetailData,
)
from tms_api.services.assignments import RoleAssignmentStore
from tms_api.services.hierarchy import HierarchyIndex, RoleDefinition
from tms_api.services.permission_codes import permission_catalog
from tms_api.utils.response import success

router = APIRouter(prefix="/hierarchy", tags=["hierarchy"])


def _definition_data(definition: RoleDefinition, hierarchy: HierarchyIndex) -> dict:
    return {
        "role_type": definition.role_type.value,
        "level": definition.level,
        "name": definition.name,
        "description": definition.description,
        # 按层级表声明顺序输出，保证前端展示稳定。
        "assignable_roles": [role.value for role in hierarchy.role_types if role in definition.assignable_roles],
        "default_permissions": sorted(definition.default_permissions),
    }


@router.get(
    "",
    summary="查询角色层级表",
    description="按声明顺序返回全部角色类型及其层级、可分配角色与默认权限。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[RoleDefinitionData]],
    responses={401: {"model": ErrorResponse}},
)
def list_hierarchy(
    request: Request,
    _ctx: RequestContext = Depends(get_actor_context),
    hierarchy: HierarchyIndex = Depends(get_hierarchy),
):
    data = [_definition_data(hierarchy.definition_of(role), hierarchy) for role in hierarchy.role_types]
    return success(request, data)


@router.get(
    "/roles/{role_type}",
    summary="查询角色详情",
    description="返回角色定义、从顶层角色到该角色的分配链与全部下属角色。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[RoleDetailData],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
def get_role_detail(
    request: Request,
    role_type: str = Path(..., description="角色类型。"),
    _ctx: RequestContext = Depends(get_actor_context),
    hierarchy: HierarchyIndex = Depends(get_hierarchy),
):
    definition = hierarchy.definition_of(role_type.strip().upper())
    data = _definition_data(definition, hierarchy)
    subordinates = hierarchy.subordinates_of(definition.role_type)
    data["path"] = [role.value for role in hierarchy.path_of(definition.role_type)]
    data["subordinates"] = [role.value for role in hierarchy.role_types if role in subordinates]
    return success(request, data)


@router.get(
    "/assignable",
    summary="查询我可分配的角色",
    description="基于当前人员在租户内权威最高的角色计算。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AssignableRolesData],
    responses={401: {"model": ErrorResponse}},
)
def get_assignable_roles(
    request: Request,
    ctx: RequestContext = Depends(get_actor_context),
    hierarchy: HierarchyIndex = Depends(get_hierarchy),
    store: RoleAssignmentStore = Depends(get_assignment_store),
):
    highest = store.highest_role_type(ctx.actor_id, ctx.tenant_id)
    if highest is None:
        return success(request, {"role_type": None, "assignable_roles": [], "visible_roles": []})
    assignable = hierarchy.assignable_roles_of(highest)
    return success(
        request,
        {
            "role_type": highest.value,
            "assignable_roles": [role.value for role in hierarchy.role_types if role in assignable],
            "visible_roles": [role.value for role in hierarchy.visible_roles_for(highest)],
        },
    )


@router.get(
    "/catalog",
    summary="查询权限点目录",
    description="返回系统内可用权限点编码列表。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[PermissionCatalogData],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
    dependencies=[Depends(require_admin())],
)
def get_permission_catalog(request: Request):
    return success(request, {"permission_codes": permission_catalog()})
