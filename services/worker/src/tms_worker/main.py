"""角色分配过期清理工作进程。

主流程:
1) 每轮开启一个短事务，批量停用 valid_until 已过的有效分配
2) 提交后休眠 sweep_interval_seconds
3) 单轮失败只记录日志，下一轮继续

清理语句是带过期条件的批量 UPDATE，多实例并发执行也只会各自停用不同的行。
"""

from collections.abc import Callable
from datetime import datetime, timezone
import logging
import time

from sqlalchemy.orm import Session

from tms_api.db.session import build_session_factory
from tms_api.services.assignments import RoleAssignmentStore
from tms_api.services.directory import SqlActorDirectory
from tms_api.services.hierarchy import HierarchyIndex, build_default_hierarchy
from tms_worker.config import get_settings

logger = logging.getLogger("tms_worker")


def _setup_logging(level: str) -> None:
    """初始化日志输出格式与级别。"""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _now_iso() -> str:
    """返回当前 UTC 时间的 ISO 字符串。"""
    return datetime.now(timezone.utc).isoformat()


def run_sweep_once(
    session_factory: Callable[[], Session],
    hierarchy: HierarchyIndex,
    clock: Callable[[], datetime] | None = None,
) -> int:
    """执行一轮过期清理并提交，返回停用数量。"""
    with session_factory() as session:
        store = RoleAssignmentStore(session, hierarchy, SqlActorDirectory(session), clock=clock)
        try:
            swept = store.sweep_expired()
            session.commit()
        except Exception:
            session.rollback()
            raise
    return swept


def main() -> None:
    """工作进程主循环。"""
    settings = get_settings()
    _setup_logging(settings.log_level)
    session_factory = build_session_factory(settings.database_url)
    hierarchy = build_default_hierarchy()

    logger.info("worker started worker_id=%s at=%s", settings.worker_id, _now_iso())

    while True:
        try:
            swept = run_sweep_once(session_factory, hierarchy)
            logger.info("sweep finished worker_id=%s deactivated=%s", settings.worker_id, swept)
            if settings.run_once:
                return
            time.sleep(settings.sweep_interval_seconds)
        except KeyboardInterrupt:
            logger.info("worker stopped")
            return
        except Exception:
            # 数据库抖动等异常记录后进入下一轮。
            logger.exception("sweep cycle failed worker_id=%s", settings.worker_id)
            if settings.run_once:
                raise
            time.sleep(settings.sweep_interval_seconds)


if __name__ == "__main__":
    main()
