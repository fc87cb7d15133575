"""请求级依赖装配。

职责：
1. 读取中间件挂载的人员上下文。
2. 从 app.state 取启动期构建的层级索引，按请求组装存储、条件评估器与解析器。
"""

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from tms_api.core.config import get_settings
from tms_api.core.context import RequestContext
from tms_api.db.session import get_db
from tms_api.services.assignments import RoleAssignmentStore
from tms_api.services.conditions import ConditionEvaluator
from tms_api.services.directory import SqlActorDirectory
from tms_api.services.hierarchy import HierarchyIndex
from tms_api.services.resolver import PermissionResolver


def get_hierarchy(request: Request) -> HierarchyIndex:
    """返回应用启动时构建的只读层级索引。"""
    return request.app.state.hierarchy


def get_request_context(request: Request) -> RequestContext:
    """返回当前请求的人员上下文；中间件未挂载时视为匿名。"""
    ctx = getattr(request.state, "actor_context", None)
    if isinstance(ctx, RequestContext):
        return ctx
    return RequestContext()


def get_actor_directory(db: Session = Depends(get_db)) -> SqlActorDirectory:
    return SqlActorDirectory(db)


def get_assignment_store(
    db: Session = Depends(get_db),
    hierarchy: HierarchyIndex = Depends(get_hierarchy),
    directory: SqlActorDirectory = Depends(get_actor_directory),
) -> RoleAssignmentStore:
    return RoleAssignmentStore(db, hierarchy, directory)


def get_condition_evaluator(directory: SqlActorDirectory = Depends(get_actor_directory)) -> ConditionEvaluator:
    return ConditionEvaluator(directory, fail_closed=get_settings().conditions_fail_closed)


def get_permission_resolver(
    store: RoleAssignmentStore = Depends(get_assignment_store),
    hierarchy: HierarchyIndex = Depends(get_hierarchy),
    evaluator: ConditionEvaluator = Depends(get_condition_evaluator),
) -> PermissionResolver:
    return PermissionResolver(store, hierarchy, evaluator)


def auth_required_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "code": "AUTH_REQUIRED",
            "message": "缺少当前人员上下文。",
            "details": {"reason": "missing_actor"},
        },
    )


def tenant_required_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={
            "code": "TENANT_REQUIRED",
            "message": "缺少租户上下文。",
            "details": {"reason": "missing_tenant"},
        },
    )


def get_actor_context(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
    """只要求人员上下文，租户可缺省。"""
    if ctx.actor_id is None:
        raise auth_required_error()
    return ctx


def get_tenant_context(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
    """要求人员与租户上下文齐全。"""
    if ctx.actor_id is None:
        raise auth_required_error()
    if ctx.tenant_id is None:
        raise tenant_required_error()
    return ctx
