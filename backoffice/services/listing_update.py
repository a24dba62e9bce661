"""
마켓 상품 수정 전송

로컬에서 정한 가격(custom_price / 권장가)과 재고, 상품명/설명을 Shopee 에 반영한다.
update_type 별로 update_item / update_price / update_stock 을 호출하고, 일부만 실패하면
partial_error 로 돌려준다.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy.orm import Session

from backoffice.schemas.shopee import UpdateResponse
from backoffice.services.catalog_repository import CatalogRepository
from backoffice.services.token_service import TokenLifecycleManager
from backoffice.shopee_client import ShopeeClient

logger = logging.getLogger(__name__)

UPDATE_TYPES = ("item", "price", "stock", "all")


@dataclass
class ListingUpdateResult:
    item_id: str
    results: dict[str, UpdateResponse] = field(default_factory=dict)

    @property
    def errors(self) -> dict[str, str]:
        return {part: resp.error for part, resp in self.results.items() if resp.is_error}

    @property
    def status(self) -> str:
        return "partial_error" if self.errors else "success"

    def to_dict(self) -> dict[str, Any]:
        return {
            "itemId": self.item_id,
            "status": self.status,
            "results": {
                part: {"error": resp.error, "message": resp.message, "requestId": resp.request_id}
                for part, resp in self.results.items()
            },
        }


class ListingUpdateService:
    def __init__(
        self,
        session: Session,
        client: ShopeeClient,
        token_manager: Optional[TokenLifecycleManager] = None,
        catalog: Optional[CatalogRepository] = None,
    ):
        self.session = session
        self.client = client
        self.token_manager = token_manager or TokenLifecycleManager(session, client)
        self.catalog = catalog or CatalogRepository(session)

    async def push(
        self,
        item_id: str,
        update_type: str = "all",
        price: Optional[float] = None,
        stock: Optional[int] = None,
        item_name: Optional[str] = None,
        description: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> ListingUpdateResult | None:
        """
        price 를 생략하면 상품의 custom_price 를 보낸다. 보낼 항목이 하나도 없으면 ValueError.
        상품이 미러에 없으면 None.
        """
        if update_type not in UPDATE_TYPES:
            raise ValueError(f"update_type 은 {UPDATE_TYPES} 중 하나여야 합니다.")

        item = self.catalog.get(item_id)
        if item is None:
            return None

        send_item = update_type in ("item", "all") and bool(item_name or description)
        if update_type in ("price", "all") and price is None:
            price = item.custom_price
        send_price = update_type in ("price", "all") and price is not None
        send_stock = update_type in ("stock", "all") and stock is not None
        if not (send_item or send_price or send_stock):
            raise ValueError("전송할 변경 사항이 없습니다.")
        if send_price and price <= 0:
            raise ValueError("가격은 0보다 커야 합니다.")

        token = access_token
        if not token:
            credential = await self.token_manager.get_valid_credential(item.shop_id)
            token = credential.access_token

        result = ListingUpdateResult(item_id=item.item_id)
        if send_item:
            result.results["item"] = await self.client.update_item(
                item.shop_id, token, item.item_id, item_name=item_name, description=description
            )
        if send_price:
            result.results["price"] = await self.client.update_price(item.shop_id, token, item.item_id, float(price))
        if send_stock:
            result.results["stock"] = await self.client.update_stock(item.shop_id, token, item.item_id, stock)

        for part, error in result.errors.items():
            resp = result.results[part]
            logger.error(f"[LISTING] {part} 수정 실패 item={item.item_id}: {error} {resp.message} request_id={resp.request_id}")
        logger.info(f"[LISTING] 상품 수정 전송 item={item.item_id} parts={sorted(result.results)} status={result.status}")
        return result
