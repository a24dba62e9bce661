"""
Shopee Open Platform v2 응답 구조.

누락/ null 필드는 이 경계에서 기본값(0, 빈 리스트, None)으로 정규화한다.
"""
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class _Upstream(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def _none_as_default(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return v


class ShopeeEnvelope(_Upstream):
    """모든 응답의 공통 필드. error 가 비어있지 않으면 실패."""
    error: str = ""
    message: str = ""
    request_id: str = ""
    warning: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return bool(self.error)


# --- get_item_list ---

class ItemRef(_Upstream):
    item_id: int
    item_status: str = ""
    update_time: Optional[int] = None


class ItemListPage(_Upstream):
    item: List[ItemRef] = Field(default_factory=list)
    total_count: int = 0
    has_next_page: bool = False
    next_offset: int = 0


class ItemListResponse(ShopeeEnvelope):
    response: ItemListPage = Field(default_factory=ItemListPage)

    def page_keys(self) -> List[int]:
        return [ref.item_id for ref in self.response.item]

    @property
    def has_more(self) -> bool:
        return self.response.has_next_page

    def next_cursor(self, current: int, page_size: int) -> int:
        # next_offset 이 0/누락이면 offset + page_size 로 진행
        return self.response.next_offset or current + page_size


# --- get_item_base_info ---

class PriceInfo(_Upstream):
    currency: str = "TWD"
    original_price: float = 0
    current_price: float = 0


class ImageInfo(_Upstream):
    image_url_list: List[str] = Field(default_factory=list)
    image_id_list: List[str] = Field(default_factory=list)


class StockSummary(_Upstream):
    total_reserved_stock: int = 0
    total_available_stock: int = 0


class StockInfoV2(_Upstream):
    summary_info: StockSummary = Field(default_factory=StockSummary)


class ItemBaseInfo(_Upstream):
    item_id: int
    item_name: Optional[str] = None
    description: Optional[str] = None
    item_sku: Optional[str] = None
    category_id: Optional[int] = None
    item_status: str = ""
    price_info: List[PriceInfo] = Field(default_factory=list)
    image: ImageInfo = Field(default_factory=ImageInfo)
    stock_info_v2: StockInfoV2 = Field(default_factory=StockInfoV2)
    attribute_list: List[dict] = Field(default_factory=list)
    sold: int = 0
    views: int = 0
    likes: int = 0
    rating_star: float = 0
    create_time: Optional[int] = None
    update_time: Optional[int] = None

    @property
    def primary_price(self) -> PriceInfo:
        # 첫 번째 price_info 가 대표 가격
        return self.price_info[0] if self.price_info else PriceInfo()

    @property
    def total_stock(self) -> int:
        return self.stock_info_v2.summary_info.total_available_stock

    @property
    def image_urls(self) -> List[str]:
        return list(self.image.image_url_list)


class ItemBaseInfoPayload(_Upstream):
    item_list: List[ItemBaseInfo] = Field(default_factory=list)


class ItemBaseInfoResponse(ShopeeEnvelope):
    response: ItemBaseInfoPayload = Field(default_factory=ItemBaseInfoPayload)

    @property
    def records(self) -> List[ItemBaseInfo]:
        return self.response.item_list


# --- get_order_list / get_order_detail ---

class OrderRef(_Upstream):
    order_sn: str
    order_status: str = ""


class OrderListPage(_Upstream):
    order_list: List[OrderRef] = Field(default_factory=list)
    more: bool = False
    next_cursor: str = ""


class OrderListResponse(ShopeeEnvelope):
    response: OrderListPage = Field(default_factory=OrderListPage)

    def page_keys(self) -> List[str]:
        return [ref.order_sn for ref in self.response.order_list]

    @property
    def has_more(self) -> bool:
        return self.response.more

    def next_cursor(self, current: str, page_size: int) -> Optional[str]:
        # 커서 기반: more=True 인데 next_cursor 가 비면 더 진행할 수 없다
        return self.response.next_cursor or None


class OrderItem(_Upstream):
    item_id: int = 0
    item_name: Optional[str] = None
    item_sku: Optional[str] = None
    model_id: int = 0
    model_quantity_purchased: int = 0
    model_original_price: float = 0
    model_discounted_price: float = 0


class OrderDetail(_Upstream):
    order_sn: str
    order_status: str = ""
    currency: str = ""
    total_amount: float = 0
    buyer_username: Optional[str] = None
    create_time: Optional[int] = None
    update_time: Optional[int] = None
    item_list: List[OrderItem] = Field(default_factory=list)


class OrderDetailPayload(_Upstream):
    order_list: List[OrderDetail] = Field(default_factory=list)


class OrderDetailResponse(ShopeeEnvelope):
    response: OrderDetailPayload = Field(default_factory=OrderDetailPayload)

    @property
    def records(self) -> List[OrderDetail]:
        return self.response.order_list


# --- update_price / update_stock / update_item ---

class UpdateResponse(ShopeeEnvelope):
    """상품 수정 계열 응답. response 내용은 엔드포인트마다 달라 dict 로 둔다."""
    response: dict = Field(default_factory=dict)


# --- auth ---

class TokenResponse(ShopeeEnvelope):
    """token/get, access_token/get 응답 (response 래퍼 없이 최상위에 위치)"""
    access_token: str = ""
    refresh_token: str = ""
    expire_in: int = 0
    shop_id: Optional[int] = None
    shop_id_list: List[int] = Field(default_factory=list)
    merchant_id_list: List[int] = Field(default_factory=list)
