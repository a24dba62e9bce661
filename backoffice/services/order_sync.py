import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from backoffice.models import SyncRun
from backoffice.schemas.shopee import OrderDetail, OrderDetailResponse, OrderListResponse
from backoffice.services.catalog_sync import PaginatedFetcher, SyncResult, persist_each
from backoffice.services.pricing.order_profit import OrderCostRepository
from backoffice.services.sync_runner import SyncRunner
from backoffice.services.token_service import TokenLifecycleManager
from backoffice.settings import settings
from backoffice.shopee_client import ShopeeClient

logger = logging.getLogger(__name__)

ORDER_STATUS_MAP = {
    "UNPAID": "pending",
    "INVOICE_PENDING": "pending",
    "READY_TO_SHIP": "processing",
    "PROCESSED": "processing",
    "SHIPPED": "shipped",
    "COMPLETED": "delivered",
    "IN_CANCEL": "cancelled",
    "CANCELLED": "cancelled",
}


def map_order_status(status: Optional[str]) -> str:
    return ORDER_STATUS_MAP.get(status or "", "pending")


class OrderSyncEngine:
    """
    주문 동기화.

    get_order_list (cursor) -> get_order_detail 배치 -> order_costs 에 원격 컬럼만 upsert.
    order_id 는 order_sn 을 그대로 쓴다. 수수료/배송비/원가 등 수기 대사 항목은 건드리지 않는다.
    """

    def __init__(
        self,
        session: Session,
        client: ShopeeClient,
        token_manager: Optional[TokenLifecycleManager] = None,
        repository: Optional[OrderCostRepository] = None,
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
        max_duration_seconds: Optional[float] = None,
        lookback_days: Optional[int] = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.session = session
        self.client = client
        self.token_manager = token_manager or TokenLifecycleManager(session, client)
        self.repository = repository or OrderCostRepository(session)
        self.page_size = page_size or settings.sync_page_size
        self.max_pages = max_pages or settings.sync_max_pages
        self.max_duration_seconds = max_duration_seconds or settings.sync_max_duration_seconds
        self.lookback_days = lookback_days or settings.sync_order_lookback_days
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def time_window(self) -> tuple[int, int]:
        now = self._clock()
        return int((now - timedelta(days=self.lookback_days)).timestamp()), int(now.timestamp())

    def _fetcher(self, shop_id: int, access_token: str, order_status: Optional[str]) -> PaginatedFetcher:
        time_from, time_to = self.time_window()

        async def list_page(cursor: str) -> OrderListResponse:
            return await self.client.get_order_list(
                shop_id,
                access_token,
                time_from,
                time_to,
                cursor=cursor,
                page_size=self.page_size,
                order_status=order_status,
            )

        async def fetch_details(order_sns: list[str]) -> OrderDetailResponse:
            return await self.client.get_order_detail(shop_id, access_token, order_sns)

        return PaginatedFetcher(
            list_page=list_page,
            fetch_details=fetch_details,
            page_size=self.page_size,
            max_pages=self.max_pages,
            max_duration_seconds=self.max_duration_seconds,
            start_cursor="",
            list_stage="get_order_list",
            detail_stage="get_order_detail",
        )

    async def run_sync(
        self,
        shop_id: int,
        access_token: Optional[str] = None,
        order_status: Optional[str] = None,
    ) -> SyncResult:
        runner = SyncRunner(self.session, shop_id, "orders")

        async def _job(sync_run: SyncRun) -> SyncResult:
            token = access_token
            if not token:
                credential = await self.token_manager.get_valid_credential(shop_id)
                token = credential.access_token

            fetched = await self._fetcher(shop_id, token, order_status).fetch_all()
            orders: list[OrderDetail] = fetched.items
            logger.info(
                f"[SYNC] shop={shop_id} 주문 수집 완료: {len(orders)}건, "
                f"list={fetched.list_calls} detail={fetched.detail_calls} truncated={fetched.truncated}"
            )

            synced, failed = persist_each(
                self.session,
                runner,
                sync_run,
                orders,
                save=lambda order: self.repository.record_remote_order(shop_id, order),
                entity_type="order",
                entity_id=lambda order: order.order_sn,
            )

            sync_run.items_fetched = len(orders)
            sync_run.items_synced = synced
            sync_run.items_failed = failed
            sync_run.api_calls = fetched.api_calls
            sync_run.meta = {
                **(sync_run.meta or {}),
                "truncated": fetched.truncated,
                "cursors": fetched.offsets,
                "order_status": order_status or "ALL",
            }
            status = "success" if failed == 0 and not fetched.truncated else "partial"
            return SyncResult(
                synced=synced,
                failed=failed,
                total_fetched=len(orders),
                status=status,
                truncated=fetched.truncated,
                run_id=str(sync_run.id),
            )

        logger.info(f"[SYNC] 주문 동기화 시작 shop={shop_id} status={order_status or 'ALL'}")
        result = await runner.run(_job)
        logger.info(
            f"[SYNC] 주문 동기화 종료 shop={shop_id} synced={result.synced} failed={result.failed} "
            f"total={result.total_fetched} status={result.status}"
        )
        return result
