"""人员目录查询。

权限引擎只需要回答三个问题：人员是否存在、是否属于某租户、所属公司与全局角色。
人员数据本身由导入流程维护，这里只读。
"""

import logging
from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tms_api.core.errors import PersistenceError
from tms_api.models.enums import PersonStatus
from tms_api.models.person import Person

logger = logging.getLogger("tms_api.directory")


class ActorDirectory(Protocol):
    """人员目录协作方接口。"""

    def exists(self, actor_id: UUID) -> bool: ...

    def belongs_to_tenant(self, actor_id: UUID, tenant_id: UUID) -> bool: ...

    def company_of(self, actor_id: UUID) -> UUID | None: ...

    def global_role_of(self, actor_id: UUID) -> str | None: ...


class SqlActorDirectory:
    """基于 persons 表的人员目录实现。

    停用的人员视为不存在，不再参与授权与分配。
    """

    def __init__(self, db: Session):
        self.db = db

    def _get(self, actor_id: UUID) -> Person | None:
        stmt = select(Person).where(Person.id == actor_id).where(Person.status == PersonStatus.ACTIVE)
        try:
            return self.db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.exception("actor lookup failed actor_id=%s", actor_id)
            raise PersistenceError("actor_lookup") from exc

    def exists(self, actor_id: UUID) -> bool:
        return self._get(actor_id) is not None

    def belongs_to_tenant(self, actor_id: UUID, tenant_id: UUID) -> bool:
        person = self._get(actor_id)
        return person is not None and person.tenant_id == tenant_id

    def company_of(self, actor_id: UUID) -> UUID | None:
        person = self._get(actor_id)
        return person.company_id if person else None

    def global_role_of(self, actor_id: UUID) -> str | None:
        person = self._get(actor_id)
        if person is None or not person.global_role:
            return None
        return person.global_role
