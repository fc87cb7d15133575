"""声明基类与各表共用的列混入。"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, MetaData, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# 条件表达式等半结构化字段：PostgreSQL 落 JSONB，SQLite 测试库落 JSON。
JSONType = JSON().with_variant(JSONB(), "postgresql")

# 与 infra/sql 脚本中的约束名保持一致。
NAMING_CONVENTION = {
    "pk": "pk_%(table_name)s",
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uk_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class UUIDPrimaryKeyMixin:
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4, comment="主键 ID。")


class TenantScopedMixin:
    """按租户隔离的表；所有查询都必须带 tenant_id 条件。"""

    tenant_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True, comment="所属租户 ID。")


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, comment="创建时间。"
    )
    # 批量 UPDATE（撤销、过期清理）不会触发 onupdate，语句里需显式写 updated_at。
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
        comment="更新时间。",
    )
