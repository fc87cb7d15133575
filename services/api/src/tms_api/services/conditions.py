"""声明式权限条件与字段过滤。"""

from collections.abc import Iterable, Mapping
import logging
from typing import Any
from uuid import UUID

from tms_api.services.directory import ActorDirectory

logger = logging.getLogger("tms_api.conditions")

# 字段过滤时始终保留的主键字段。
ALWAYS_KEPT_FIELDS = ("id",)


class ConditionEvaluator:
    """评估高级权限上的条件对象。

    支持：
    1. `{"ownedBy": "self"}`：资源 ID 等于当前人员 ID。
    2. `{"companyId": "same"}`：当前人员与资源人员属于同一公司（当前人员必须有公司）。

    一个条件对象作为整体评估，不支持 AND/OR 组合。
    无法识别的条件默认视为满足，fail_closed=True 时视为不满足。
    """

    def __init__(self, directory: ActorDirectory, *, fail_closed: bool = False):
        self.directory = directory
        self.fail_closed = fail_closed

    def evaluate(
        self,
        conditions: Mapping[str, Any] | None,
        actor_id: UUID,
        resource_id: UUID | None,
    ) -> bool:
        if not conditions or not isinstance(conditions, Mapping):
            return True

        if conditions.get("ownedBy") == "self":
            return resource_id is not None and resource_id == actor_id

        if conditions.get("companyId") == "same":
            if resource_id is None:
                return False
            actor_company = self.directory.company_of(actor_id)
            if actor_company is None:
                return False
            return actor_company == self.directory.company_of(resource_id)

        logger.warning(
            "unrecognized permission condition actor_id=%s conditions=%s fail_closed=%s",
            actor_id,
            dict(conditions),
            self.fail_closed,
        )
        return not self.fail_closed


def _filter_object(item: Any, allowed: set[str]) -> Any:
    if not isinstance(item, Mapping):
        return item
    filtered = {key: value for key, value in item.items() if key in allowed}
    for key in ALWAYS_KEPT_FIELDS:
        if key in item:
            filtered[key] = item[key]
    return filtered


def filter_fields(data: Any, allowed_fields: Iterable[str]) -> Any:
    """按允许字段裁剪对象或对象列表；允许集合为空表示不限制。"""
    allowed = set(allowed_fields)
    if not allowed:
        return data
    if isinstance(data, list):
        return [_filter_object(item, allowed) for item in data]
    return _filter_object(data, allowed)
