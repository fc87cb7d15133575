"""存活与就绪探针。"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from fastapi import APIRouter, Depends, Request

from tms_api.db.session import get_db
from tms_api.dependencies import get_hierarchy
from tms_api.models.role import RoleAssignment
from tms_api.schemas.common import ErrorResponse, SuccessResponse
from tms_api.schemas.responses import HealthStatusData, ReadinessData
from tms_api.services.hierarchy import HierarchyIndex
from tms_api.utils.response import success

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live", summary="存活探针", response_model=SuccessResponse[HealthStatusData])
def live(request: Request):
    return success(request, {"status": "ok"})


@router.get(
    "/ready",
    summary="就绪探针",
    description="确认角色分配表可查询，并返回已加载的层级概况。",
    response_model=SuccessResponse[ReadinessData],
    responses={500: {"model": ErrorResponse}},
)
def ready(
    request: Request,
    db: Session = Depends(get_db),
    hierarchy: HierarchyIndex = Depends(get_hierarchy),
):
    # 探测的是脚本维护的业务表本身，而不只是连接可用。
    db.execute(select(RoleAssignment.id).limit(1))
    return success(
        request,
        {"status": "ready", "hierarchy_root": hierarchy.root.value, "role_count": len(hierarchy.role_types)},
    )
