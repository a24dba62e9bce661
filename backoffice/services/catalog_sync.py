import logging
import time
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional

from sqlalchemy.orm import Session

from backoffice.models import SyncRun
from backoffice.schemas.shopee import ItemBaseInfo, ItemBaseInfoResponse, ItemListResponse
from backoffice.services.catalog_repository import CatalogRepository
from backoffice.services.exceptions import UpstreamAPIError
from backoffice.services.sync_runner import SyncRunner
from backoffice.services.token_service import TokenLifecycleManager
from backoffice.settings import settings
from backoffice.shopee_client import ShopeeClient

logger = logging.getLogger(__name__)


ListPageFn = Callable[[Any], Awaitable[Any]]
FetchDetailsFn = Callable[[list], Awaitable[Any]]


@dataclass
class FetchResult:
    items: list = field(default_factory=list)
    list_calls: int = 0
    detail_calls: int = 0
    offsets: list = field(default_factory=list)
    truncated: bool = False

    @property
    def api_calls(self) -> int:
        return self.list_calls + self.detail_calls


@dataclass
class PaginatedFetcher:
    """
    2단계 수집기.
    1) list 엔드포인트로 키(item_id / order_sn) 페이지를 순차 조회
    2) 페이지마다 detail 배치 조회 후 누적

    list 응답은 page_keys() / has_more / next_cursor(current, page_size) 를,
    detail 응답은 records 를 제공해야 한다 (schemas.shopee 의 *Response 참고).
    상품은 정수 offset, 주문은 문자열 cursor 로 진행한다.

    페이지는 순차로만 조회한다 (이전 detail 호출이 끝나야 다음 list 호출).
    max_pages / max_duration_seconds 에 도달하면 중단하고 truncated=True.
    """
    list_page: ListPageFn
    fetch_details: FetchDetailsFn
    page_size: int = 50
    max_pages: int = 200
    max_duration_seconds: float = 600.0
    clock: Callable[[], float] = time.monotonic
    start_cursor: Any = 0
    list_stage: str = "get_item_list"
    detail_stage: str = "get_item_base_info"

    def _error(self, resp, stage: str, offset: Any, result: FetchResult) -> UpstreamAPIError:
        return UpstreamAPIError(
            resp.message or f"{stage} failed",
            error=resp.error,
            request_id=resp.request_id,
            context={
                "stage": stage,
                "offset": offset,
                "page": result.list_calls,
                "offsets": list(result.offsets),
            },
        )

    async def fetch_all(self) -> FetchResult:
        result = FetchResult()
        offset = self.start_cursor
        started = self.clock()

        while True:
            if result.list_calls >= self.max_pages:
                logger.warning(f"[SYNC] 페이지 상한 도달 ({self.max_pages}), offset={offset} 에서 중단")
                result.truncated = True
                break
            if self.clock() - started >= self.max_duration_seconds:
                logger.warning(f"[SYNC] 시간 상한 도달 ({self.max_duration_seconds}s), offset={offset} 에서 중단")
                result.truncated = True
                break

            page = await self.list_page(offset)
            result.list_calls += 1
            result.offsets.append(offset)

            if page.is_error:
                raise self._error(page, self.list_stage, offset, result)

            keys = page.page_keys()
            logger.debug(f"[SYNC] {self.list_stage} offset={offset} count={len(keys)} has_more={page.has_more}")
            if not keys:
                break

            detail = await self.fetch_details(keys)
            result.detail_calls += 1
            if detail.is_error:
                raise self._error(detail, self.detail_stage, offset, result)
            result.items.extend(detail.records)

            if not page.has_more:
                break
            next_offset = page.next_cursor(offset, self.page_size)
            if next_offset is None:
                logger.warning(f"[SYNC] {self.list_stage} 다음 커서 없음, offset={offset} 에서 중단")
                result.truncated = True
                break
            offset = next_offset

        return result


@dataclass
class SyncResult:
    synced: int
    failed: int
    total_fetched: int
    status: str
    truncated: bool = False
    run_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "synced": self.synced,
            "failed": self.failed,
            "totalFetched": self.total_fetched,
            "status": self.status,
            "truncated": self.truncated,
            "runId": self.run_id,
        }


class CatalogSyncEngine:
    """
    전체 카탈로그 동기화.

    토큰 확보 -> PaginatedFetcher 로 전체 수집 -> item_id 기준 upsert (상품 단위 커밋).
    상품 단위 저장 실패는 격리되어 failed 로 집계되고, 첫 list 호출 실패 등 수집 단계 실패는
    카탈로그에 아무것도 쓰지 않고 예외를 올린다.
    """

    def __init__(
        self,
        session: Session,
        client: ShopeeClient,
        token_manager: Optional[TokenLifecycleManager] = None,
        repository: Optional[CatalogRepository] = None,
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
        max_duration_seconds: Optional[float] = None,
        item_statuses: Optional[list[str]] = None,
    ):
        self.session = session
        self.client = client
        self.token_manager = token_manager or TokenLifecycleManager(session, client)
        self.repository = repository or CatalogRepository(session)
        self.page_size = page_size or settings.sync_page_size
        self.max_pages = max_pages or settings.sync_max_pages
        self.max_duration_seconds = max_duration_seconds or settings.sync_max_duration_seconds
        self.item_statuses = item_statuses or list(settings.sync_item_statuses)

    def _fetcher(self, shop_id: int, access_token: str) -> PaginatedFetcher:
        async def list_page(offset: int) -> ItemListResponse:
            return await self.client.get_item_list(
                shop_id, access_token, offset=offset, page_size=self.page_size, item_status=self.item_statuses
            )

        async def fetch_details(item_ids: list[int]) -> ItemBaseInfoResponse:
            return await self.client.get_item_base_info(shop_id, access_token, item_ids)

        return PaginatedFetcher(
            list_page=list_page,
            fetch_details=fetch_details,
            page_size=self.page_size,
            max_pages=self.max_pages,
            max_duration_seconds=self.max_duration_seconds,
        )

    async def run_sync(self, shop_id: int, access_token: Optional[str] = None) -> SyncResult:
        runner = SyncRunner(self.session, shop_id, "products")

        async def _job(sync_run: SyncRun) -> SyncResult:
            token = access_token
            if not token:
                credential = await self.token_manager.get_valid_credential(shop_id)
                token = credential.access_token

            fetched = await self._fetcher(shop_id, token).fetch_all()
            logger.info(
                f"[SYNC] shop={shop_id} 수집 완료: {len(fetched.items)}건, "
                f"list={fetched.list_calls} detail={fetched.detail_calls} truncated={fetched.truncated}"
            )

            synced, failed = self._reconcile(runner, sync_run, shop_id, fetched.items)

            sync_run.items_fetched = len(fetched.items)
            sync_run.items_synced = synced
            sync_run.items_failed = failed
            sync_run.api_calls = fetched.api_calls
            sync_run.meta = {
                **(sync_run.meta or {}),
                "truncated": fetched.truncated,
                "offsets": fetched.offsets,
            }
            status = "success" if failed == 0 and not fetched.truncated else "partial"
            return SyncResult(
                synced=synced,
                failed=failed,
                total_fetched=len(fetched.items),
                status=status,
                truncated=fetched.truncated,
                run_id=str(sync_run.id),
            )

        logger.info(f"[SYNC] 상품 동기화 시작 shop={shop_id}")
        result = await runner.run(_job)
        logger.info(
            f"[SYNC] 상품 동기화 종료 shop={shop_id} synced={result.synced} failed={result.failed} "
            f"total={result.total_fetched} status={result.status}"
        )
        return result

    def _reconcile(
        self,
        runner: SyncRunner,
        sync_run: SyncRun,
        shop_id: int,
        items: list[ItemBaseInfo],
    ) -> tuple[int, int]:
        return persist_each(
            self.session,
            runner,
            sync_run,
            items,
            save=lambda item: self.repository.upsert_remote_item(shop_id, item, datetime.now(timezone.utc)),
            entity_type="item",
            entity_id=lambda item: str(item.item_id),
        )


def persist_each(
    session: Session,
    runner: SyncRunner,
    sync_run: SyncRun,
    records: Iterable[Any],
    save: Callable[[Any], None],
    entity_type: str,
    entity_id: Callable[[Any], str],
) -> tuple[int, int]:
    """
    레코드 단위 트랜잭션으로 저장. 한 건의 실패는 롤백 후 SyncRunError 로 남기고 다음으로 진행한다.
    (synced, failed) 반환.
    """
    synced = 0
    failed = 0
    for record in records:
        try:
            save(record)
            session.commit()
            synced += 1
        except Exception as e:
            session.rollback()
            failed += 1
            logger.error(f"[SYNC] {entity_type} 저장 실패 id={entity_id(record)}: {e}", exc_info=True)
            runner.log_error(
                sync_run,
                entity_type,
                str(e),
                traceback.format_exc(),
                entity_id=entity_id(record),
                error_code=getattr(e, "error_code", type(e).__name__),
            )
            session.commit()
    return synced, failed
