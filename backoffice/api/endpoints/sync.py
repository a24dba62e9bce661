"""
카탈로그 동기화 API

외부 트리거(관리 화면 / 스케줄러)가 상점 단위 상품 / 주문 동기화를 실행하고 이력을 조회합니다.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.api.deps import get_shopee_client, http_error
from backoffice.db import get_session
from backoffice.schemas.pricing import SyncResultResponse, SyncRunListResponse
from backoffice.services.catalog_sync import CatalogSyncEngine
from backoffice.services.exceptions import MarketplaceError
from backoffice.services.order_sync import OrderSyncEngine
from backoffice.services.sync_runner import list_runs, run_to_dict
from backoffice.shopee_client import ShopeeClient

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/{shop_id}/products", response_model=SyncResultResponse)
async def sync_products(
    shop_id: int,
    access_token: str | None = Query(default=None, description="없으면 저장된 자격 증명 사용"),
    session: Session = Depends(get_session),
    client: ShopeeClient = Depends(get_shopee_client),
):
    """
    상점의 전체 상품을 동기화합니다.

    Returns:
        {"synced": 4, "failed": 1, "totalFetched": 5, "status": "partial", "truncated": false}
    """
    engine = CatalogSyncEngine(session, client)
    try:
        result = await engine.run_sync(shop_id, access_token=access_token)
    except MarketplaceError as e:
        logger.error(f"[SYNC] shop={shop_id} 동기화 실패: {e.message}")
        raise http_error(e) from e
    return result.to_dict()


@router.get("/{shop_id}/runs", response_model=SyncRunListResponse)
def get_sync_runs(
    shop_id: int,
    limit: int = Query(default=20, ge=1, le=200),
    session: Session = Depends(get_session),
):
    runs = list_runs(session, shop_id, limit=limit)
    return {"runs": [run_to_dict(r) for r in runs]}


@router.post("/{shop_id}/orders", response_model=SyncResultResponse)
async def sync_orders(
    shop_id: int,
    access_token: str | None = Query(default=None, description="없으면 저장된 자격 증명 사용"),
    order_status: str | None = Query(default=None, description="READY_TO_SHIP 등. 없으면 전체"),
    session: Session = Depends(get_session),
    client: ShopeeClient = Depends(get_shopee_client),
):
    """
    최근 주문(기본 15일)을 order_costs 로 동기화합니다. 수기 입력한 비용 항목은 유지됩니다.
    """
    engine = OrderSyncEngine(session, client)
    try:
        result = await engine.run_sync(shop_id, access_token=access_token, order_status=order_status)
    except MarketplaceError as e:
        logger.error(f"[SYNC] shop={shop_id} 주문 동기화 실패: {e.message}")
        raise http_error(e) from e
    return result.to_dict()
