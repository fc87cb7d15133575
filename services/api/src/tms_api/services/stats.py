"""角色分配统计（只读聚合查询）。"""

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from tms_api.models.role import AdvancedPermission, RoleAssignment, RolePermission


def _not_expired(now: datetime):
    return RoleAssignment.valid_until.is_(None) | (RoleAssignment.valid_until > now)


def role_statistics(db: Session, *, tenant_id: UUID, now: datetime | None = None) -> dict[str, int]:
    """按角色类型统计租户内持有有效分配（未停用且未过期）的人数。"""
    now = now or datetime.now(timezone.utc)
    rows = db.execute(
        select(RoleAssignment.role_type, func.count(func.distinct(RoleAssignment.actor_id)))
        .where(RoleAssignment.tenant_id == tenant_id)
        .where(RoleAssignment.is_active.is_(True))
        .where(_not_expired(now))
        .group_by(RoleAssignment.role_type)
        .order_by(RoleAssignment.role_type.asc())
    ).all()
    return {role_type: count for role_type, count in rows}


def _count(db: Session, *conditions) -> int:
    return db.execute(select(func.count(RoleAssignment.id)).where(*conditions)).scalar_one()


def detailed_statistics(
    db: Session,
    *,
    tenant_id: UUID,
    now: datetime,
    recent_days: int = 30,
) -> dict[str, Any]:
    """返回角色分布、有效/过期/停用汇总与按公司拆分的统计。"""
    in_tenant = RoleAssignment.tenant_id == tenant_id
    active = RoleAssignment.is_active.is_(True)
    not_expired = _not_expired(now)

    company_rows = db.execute(
        select(
            RoleAssignment.company_id,
            RoleAssignment.role_type,
            func.count(func.distinct(RoleAssignment.actor_id)),
        )
        .where(in_tenant)
        .where(active)
        .where(not_expired)
        .where(RoleAssignment.company_id.is_not(None))
        .group_by(RoleAssignment.company_id, RoleAssignment.role_type)
    ).all()
    companies: dict[str, dict[str, int]] = {}
    for company_id, role_type, count in company_rows:
        companies.setdefault(str(company_id), {})[role_type] = count

    return {
        "role_distribution": role_statistics(db, tenant_id=tenant_id, now=now),
        "summary": {
            "total_active": _count(db, in_tenant, active, not_expired),
            # 已过期但尚未被清理任务停用。
            "expired_pending_sweep": _count(
                db,
                in_tenant,
                active,
                RoleAssignment.valid_until.is_not(None),
                RoleAssignment.valid_until <= now,
            ),
            "inactive": _count(db, in_tenant, RoleAssignment.is_active.is_(False)),
            "recent_assignments": _count(
                db,
                in_tenant,
                active,
                RoleAssignment.assigned_at >= now - timedelta(days=recent_days),
            ),
        },
        "companies": companies,
    }


def permission_usage(db: Session, *, tenant_id: UUID) -> dict[str, list[dict[str, Any]]]:
    """统计租户内有效分配上最常用的显式权限点与高级权限。"""
    active_ids = (
        select(RoleAssignment.id)
        .where(RoleAssignment.tenant_id == tenant_id)
        .where(RoleAssignment.is_active.is_(True))
    )
    permission_count = func.count(RolePermission.id)
    role_permission_rows = db.execute(
        select(RolePermission.permission, permission_count)
        .where(RolePermission.assignment_id.in_(active_ids))
        .where(RolePermission.is_granted.is_(True))
        .group_by(RolePermission.permission)
        .order_by(permission_count.desc(), RolePermission.permission.asc())
    ).all()
    advanced_count = func.count(AdvancedPermission.id)
    advanced_rows = db.execute(
        select(AdvancedPermission.resource, AdvancedPermission.action, advanced_count)
        .where(AdvancedPermission.assignment_id.in_(active_ids))
        .group_by(AdvancedPermission.resource, AdvancedPermission.action)
        .order_by(advanced_count.desc(), AdvancedPermission.resource.asc())
    ).all()
    return {
        "role_permissions": [{"permission": code, "count": count} for code, count in role_permission_rows],
        "advanced_permissions": [
            {"resource": resource, "action": action, "count": count} for resource, action, count in advanced_rows
        ],
    }


def _expiry_item(row: RoleAssignment) -> dict[str, Any]:
    return {
        "assignment_id": row.id,
        "actor_id": row.actor_id,
        "role_type": row.role_type,
        "company_id": row.company_id,
        "valid_until": row.valid_until,
    }


def expiration_report(
    db: Session,
    *,
    tenant_id: UUID,
    now: datetime,
    days_ahead: int = 30,
) -> dict[str, Any]:
    """返回已过期（尚未清理）与即将过期的分配。"""
    horizon = now + timedelta(days=days_ahead)
    base = (
        select(RoleAssignment)
        .where(RoleAssignment.tenant_id == tenant_id)
        .where(RoleAssignment.is_active.is_(True))
        .where(RoleAssignment.valid_until.is_not(None))
        .order_by(RoleAssignment.valid_until.asc())
    )
    expired = db.execute(base.where(RoleAssignment.valid_until <= now)).scalars().all()
    expiring = (
        db.execute(base.where(RoleAssignment.valid_until > now).where(RoleAssignment.valid_until <= horizon))
        .scalars()
        .all()
    )
    return {
        "days_ahead": days_ahead,
        "expired": [_expiry_item(row) for row in expired],
        "expiring_soon": [_expiry_item(row) for row in expiring],
        "expired_count": len(expired),
        "expiring_soon_count": len(expiring),
    }
