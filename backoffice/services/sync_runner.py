import asyncio
import logging
import time
import traceback
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.models import SyncRun, SyncRunError
from backoffice.services.exceptions import SyncInProgressError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (shop_id, sync_type) 단위 single-flight
_run_locks: dict[tuple[int, str], asyncio.Lock] = {}


class SyncRunner:
    """
    공통 동기화 잡 러너.
    - 프로세스 내 asyncio.Lock 으로 (shop_id, sync_type) 중복 실행 방지
    - 실행 이력(SyncRun) 및 에러(SyncRunError) 기록 (호출 1회당 1행, append-only)
    """
    def __init__(self, session: Session, shop_id: int, sync_type: str = "products"):
        self.session = session
        self.shop_id = int(shop_id)
        self.sync_type = sync_type
        self.run_id: Optional[uuid.UUID] = None

    @property
    def _key(self) -> tuple[int, str]:
        return (self.shop_id, self.sync_type)

    def is_running(self) -> bool:
        lock = _run_locks.get(self._key)
        return lock is not None and lock.locked()

    async def run(self, func: Callable[[SyncRun], Awaitable[T]], **kwargs) -> T:
        """
        동기화 작업을 감싸서 실행합니다.

        Args:
            func: 실제 동기화 로직. SyncRun 객체를 인자로 받아 items_* 카운터를 채운다.
            **kwargs: meta 정보를 포함할 수 있습니다.

        치명적 실패 시 status=failure, 카운터 0 으로 기록한 뒤 예외를 다시 올린다.
        """
        if self.is_running():
            logger.warning(f"[SYNC] {self.sync_type} shop={self.shop_id} is already running.")
            raise SyncInProgressError(self.shop_id, self.sync_type)

        # 중복 실행은 위에서 거절되므로 대기자는 없다. 해제 후 바로 항목을 지운다.
        lock = _run_locks.setdefault(self._key, asyncio.Lock())
        try:
            async with lock:
                return await self._run_locked(func, **kwargs)
        finally:
            if _run_locks.get(self._key) is lock and not lock.locked():
                del _run_locks[self._key]

    async def _run_locked(self, func: Callable[[SyncRun], Awaitable[T]], **kwargs) -> T:
        sync_run = SyncRun(
            shop_id=self.shop_id,
            sync_type=self.sync_type,
            status="running",
            meta=kwargs.get("meta", {}),
        )
        self.session.add(sync_run)
        self.session.commit()  # ID 생성을 위해 커밋
        self.run_id = sync_run.id

        start_time = time.time()
        logger.info(f"[SYNC] Starting run {self.run_id} ({self.sync_type} shop={self.shop_id})")

        try:
            result = await func(sync_run)

            if sync_run.status == "running":  # 내부에서 변경하지 않은 경우만
                truncated = bool((sync_run.meta or {}).get("truncated"))
                sync_run.status = "success" if sync_run.items_failed == 0 and not truncated else "partial"
            return result

        except Exception as e:
            self.session.rollback()
            logger.error(f"[SYNC] Run {self.run_id} encountered a critical failure: {e}")
            sync_run.status = "failure"
            sync_run.items_fetched = 0
            sync_run.items_synced = 0
            sync_run.items_failed = 0
            self.log_error(
                sync_run,
                "system",
                str(e),
                traceback.format_exc(),
                error_code=getattr(e, "error_code", type(e).__name__),
            )
            raise

        finally:
            end_time = time.time()
            sync_run.completed_at = datetime.now(timezone.utc)
            sync_run.duration_ms = int((end_time - start_time) * 1000)
            self.session.commit()
            logger.info(
                f"[SYNC] Run {self.run_id} completed. Status: {sync_run.status}, "
                f"Synced: {sync_run.items_synced}, Failed: {sync_run.items_failed}"
            )

    def log_error(
        self,
        sync_run: SyncRun,
        entity_type: str,
        message: str,
        stack: Optional[str] = None,
        entity_id: Optional[str] = None,
        error_code: Optional[str] = None,
    ) -> None:
        """상세 에러 기록 보조 메서드"""
        self.session.add(
            SyncRunError(
                run_id=sync_run.id,
                entity_type=entity_type,
                entity_id=entity_id,
                error_code=error_code,
                message=message,
                stack=stack,
            )
        )


def list_runs(session: Session, shop_id: int, limit: int = 20) -> list[SyncRun]:
    stmt = (
        select(SyncRun)
        .where(SyncRun.shop_id == int(shop_id))
        .order_by(SyncRun.started_at.desc())
        .limit(limit)
    )
    return list(session.scalars(stmt).all())


def run_to_dict(run: SyncRun) -> dict[str, Any]:
    return {
        "id": str(run.id),
        "shop_id": run.shop_id,
        "sync_type": run.sync_type,
        "status": run.status,
        "items_fetched": run.items_fetched,
        "items_synced": run.items_synced,
        "items_failed": run.items_failed,
        "api_calls": run.api_calls,
        "truncated": bool((run.meta or {}).get("truncated")),
        "started_at": run.started_at.isoformat() if run.started_at else None,
        "completed_at": run.completed_at.isoformat() if run.completed_at else None,
        "duration_ms": run.duration_ms,
    }
