"""人员目录模型。

人员数据由人员导入流程维护，权限引擎只读取其中的租户、公司与全局角色字段。
"""

from uuid import UUID

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from tms_api.models.base import Base, TenantScopedMixin, TimestampMixin, UUIDPrimaryKeyMixin
from tms_api.models.enums import PersonStatus


class Person(Base, UUIDPrimaryKeyMixin, TenantScopedMixin, TimestampMixin):
    """人员实体（员工、培训师、管理员等统一建模）。"""

    __tablename__ = "persons"

    # 所属公司 ID，条件 `companyId: same` 依赖该字段。
    company_id: Mapped[UUID | None] = mapped_column(index=True)
    # 独立于租户分配的全局角色属性（如 SUPER_ADMIN）。
    global_role: Mapped[str | None] = mapped_column(String(32))
    # 登录与通知邮箱。
    email: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    # 前端展示名。
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    # 账号状态（active/inactive）。
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=PersonStatus.ACTIVE)
