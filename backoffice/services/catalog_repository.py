import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice.db import dialect_insert
from backoffice.models import CatalogItem, PriceHistory
from backoffice.schemas.shopee import ItemBaseInfo
from backoffice.services.exceptions import PersistenceError

logger = logging.getLogger(__name__)

ITEM_STATUS_MAP = {
    "NORMAL": "active",
    "UNLIST": "inactive",
    "BANNED": "banned",
    "DELETED": "deleted",
}

# 동기화가 절대 건드리지 않는 로컬 소유 컬럼
LOCAL_FIELDS = frozenset({
    "cost_price",
    "source_url",
    "source_urls",
    "notes",
    "custom_price",
    "price_rule_id",
    "tags",
})


def map_item_status(status: Optional[str]) -> str:
    return ITEM_STATUS_MAP.get(status or "", "unknown")


def remote_columns(item: ItemBaseInfo, synced_at: datetime) -> dict[str, Any]:
    """원격 상품 -> 원격 소유 컬럼 값 (누락 숫자는 0, 선택 필드는 None/빈 리스트)"""
    price = item.primary_price
    images = item.image_urls
    return {
        "name": item.item_name,
        "description": item.description,
        "sku": item.item_sku,
        "category_id": item.category_id,
        "image_url": images[0] if images else None,
        "images": images,
        "attributes": item.attribute_list,
        "original_price": price.original_price,
        "current_price": price.current_price,
        "currency": price.currency,
        "stock": item.total_stock,
        "status": map_item_status(item.item_status),
        "marketplace_status": item.item_status or None,
        "sold": item.sold,
        "views": item.views,
        "likes": item.likes,
        "rating_star": item.rating_star,
        "remote_create_time": item.create_time,
        "remote_update_time": item.update_time,
        "last_synced_at": synced_at,
        "updated_at": synced_at,
    }


class CatalogRepository:
    """
    상품 미러 저장소.
    - upsert_remote_item: item_id 기준 upsert, 원격 컬럼만 갱신
    - update_local_fields: 로컬 소유 컬럼만 갱신 (미동기 item_id 는 placeholder 행 생성)
    """

    def __init__(self, session: Session):
        self.session = session

    def get(self, item_id: str | int) -> CatalogItem | None:
        stmt = select(CatalogItem).where(CatalogItem.item_id == str(item_id)).execution_options(populate_existing=True)
        return self.session.scalars(stmt).one_or_none()

    def list_by_shop(self, shop_id: int) -> list[CatalogItem]:
        stmt = select(CatalogItem).where(CatalogItem.shop_id == int(shop_id)).order_by(CatalogItem.id)
        return list(self.session.scalars(stmt).all())

    def upsert_remote_item(self, shop_id: int, item: ItemBaseInfo, synced_at: datetime | None = None) -> None:
        """커밋은 호출자가 한다 (상품 단위 트랜잭션)."""
        synced_at = synced_at or datetime.now(timezone.utc)
        columns = remote_columns(item, synced_at)

        stmt = dialect_insert(self.session, CatalogItem).values(
            item_id=str(item.item_id),
            shop_id=int(shop_id),
            **columns,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["item_id"],
            set_={k: stmt.excluded[k] for k in columns},
        )
        try:
            self.session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(str(item.item_id), f"상품 저장 실패: {e}") from e

    def update_local_fields(self, shop_id: int, item_id: str | int, **fields: Any) -> CatalogItem:
        unknown = set(fields) - LOCAL_FIELDS
        if unknown:
            raise ValueError(f"로컬 소유 컬럼이 아닙니다: {sorted(unknown)}")

        item = self.get(item_id)
        if item is None:
            # 아직 동기화되지 않은 상품을 참조하는 로컬 편집
            item = CatalogItem(item_id=str(item_id), shop_id=int(shop_id), images=[], attributes=[])
            self.session.add(item)
            self.session.flush()
            logger.info(f"[SYNC] placeholder 상품 생성 item_id={item_id}")

        if "custom_price" in fields and fields["custom_price"] is not None and fields["custom_price"] != item.custom_price:
            self._record_price_change(item, fields["custom_price"], "manual", fields.get("price_rule_id"))

        for key, value in fields.items():
            setattr(item, key, value)
        item.updated_at = datetime.now(timezone.utc)
        self.session.commit()
        return item

    def apply_price_evaluation(
        self,
        item: CatalogItem,
        new_price: float,
        price_rule_id: int | None = None,
        change_reason: str = "price_rule",
    ) -> bool:
        """custom_price 를 갱신하고 변경 시 price_history 를 남긴다. 변경 여부 반환."""
        if item.custom_price is not None and float(item.custom_price) == float(new_price):
            return False

        self._record_price_change(item, new_price, change_reason, price_rule_id)
        item.custom_price = new_price
        if price_rule_id is not None:
            item.price_rule_id = price_rule_id
        item.updated_at = datetime.now(timezone.utc)
        self.session.commit()
        return True

    def _record_price_change(self, item: CatalogItem, new_price: float, reason: str, price_rule_id: int | None) -> None:
        self.session.add(
            PriceHistory(
                product_id=item.id,
                item_id=item.item_id,
                old_price=item.custom_price,
                new_price=new_price,
                change_reason=reason,
                price_rule_id=price_rule_id,
            )
        )

    def price_history(self, item_id: str | int) -> list[PriceHistory]:
        stmt = (
            select(PriceHistory)
            .where(PriceHistory.item_id == str(item_id))
            .order_by(PriceHistory.id)
        )
        return list(self.session.scalars(stmt).all())

    def clear_price_rule(self, rule_id: int) -> None:
        """규칙 삭제 시 참조 해제"""
        self.session.execute(
            update(CatalogItem).where(CatalogItem.price_rule_id == rule_id).values(price_rule_id=None)
        )
