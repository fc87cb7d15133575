"""响应信封结构，与 utils.response 的输出一一对应。"""

from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """开启 from_attributes，允许直接由视图对象构造。"""

    model_config = ConfigDict(from_attributes=True)


class RequestTrace(BaseSchema):
    """请求轨迹，成功 meta 与错误 details 共用。"""

    model_config = ConfigDict(from_attributes=True, extra="allow")

    method: str = Field(description="HTTP 方法。")
    path: str = Field(description="请求路径。")
    timestamp: str = Field(description="服务端 UTC 时间（ISO 8601）。")
    tenant_id: UUID | None = Field(default=None, description="网关透传的租户 ID。")
    actor_id: UUID | None = Field(default=None, description="网关透传的人员 ID。")


class ResponseMeta(RequestTrace):
    process_ms: int | None = Field(default=None, description="处理耗时（毫秒）。")


class ErrorBody(BaseSchema):
    code: str = Field(description="机器可识别错误码，例如 PERMISSION_DENIED、ROLE_DENIED。")
    message: str = Field(description="人类可读错误信息。")
    details: RequestTrace = Field(description="请求轨迹；拒绝时附带 required_permissions / required_roles。")


class ErrorResponse(BaseSchema):
    request_id: str = Field(description="请求追踪 ID。")
    error: ErrorBody


T = TypeVar("T")


class SuccessResponse(BaseSchema, Generic[T]):
    """成功信封。"""

    request_id: str = Field(description="请求追踪 ID。")
    data: T = Field(description="业务数据。")
    meta: ResponseMeta = Field(description="请求轨迹与路由附加信息（如 has_global_access）。")
