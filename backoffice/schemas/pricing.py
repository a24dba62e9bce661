from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ==================== Pricing ====================

class RecommendPriceRequest(BaseModel):
    """권장 판매가 요청"""
    cost_price: float = Field(..., description="원가 (원천 통화)")
    region: str = Field(default="TW", description="지역 코드")
    margin_target: float = Field(default=0.15, ge=0, lt=1, description="목표 마진율")


class RegionSettingUpdate(BaseModel):
    """지역 설정 수정 요청 (보낸 필드만 반영)"""
    currency: Optional[str] = None
    currency_symbol: Optional[str] = None
    decimals: Optional[int] = Field(default=None, ge=0, le=4)
    exchange_rate: Optional[float] = Field(default=None, gt=0)
    commission_rate: Optional[float] = Field(default=None, ge=0, lt=1)
    service_fee_rate: Optional[float] = Field(default=None, ge=0, lt=1)
    transaction_fee_rate: Optional[float] = Field(default=None, ge=0, lt=1)
    shipping_cost_local: Optional[float] = Field(default=None, ge=0)
    shipping_cost_intl: Optional[float] = Field(default=None, ge=0)


class RegionSettingResponse(BaseModel):
    region: str
    currency: str
    currency_symbol: str
    decimals: int
    exchange_rate: float
    commission_rate: float
    service_fee_rate: float
    transaction_fee_rate: float
    shipping_cost_local: float
    shipping_cost_intl: float

    model_config = ConfigDict(from_attributes=True)


class EvaluatePriceRequest(BaseModel):
    """상품 가격 규칙 평가 요청"""
    region: Optional[str] = Field(default=None, description="마진 계산에 사용할 지역 (없으면 기본 지역)")
    base_price: Optional[float] = Field(default=None, gt=0, description="기준가 (없으면 current_price)")
    apply: bool = Field(default=False, description="True 면 custom_price 에 반영")


# ==================== Tokens ====================

class TokenExchangeRequest(BaseModel):
    code: str
    shop_id: int
    region: Optional[str] = None


class CredentialResponse(BaseModel):
    shop_id: int
    region: str
    shop_name: Optional[str] = None
    access_token: Optional[str] = Field(default=None, description="마스킹된 값")
    access_token_expires_at: datetime
    refresh_token_expires_at: datetime
    state: str
    is_expired: bool


# ==================== Sync ====================

class SyncResultResponse(BaseModel):
    synced: int
    failed: int
    totalFetched: int
    status: str
    truncated: bool = False
    runId: Optional[str] = None


class SyncRunResponse(BaseModel):
    id: str
    shop_id: int
    sync_type: str
    status: str
    items_fetched: int
    items_synced: int
    items_failed: int
    api_calls: int
    truncated: bool
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    duration_ms: Optional[int] = None


class SyncRunListResponse(BaseModel):
    runs: List[SyncRunResponse] = []


# ==================== Listings ====================

class ListingUpdateRequest(BaseModel):
    """마켓 상품 수정 전송 요청 (price 가 없으면 custom_price 사용)"""
    update_type: Literal["item", "price", "stock", "all"] = "all"
    price: Optional[float] = Field(default=None, gt=0)
    stock: Optional[int] = Field(default=None, ge=0)
    item_name: Optional[str] = None
    description: Optional[str] = None
    access_token: Optional[str] = Field(default=None, description="없으면 저장된 자격 증명 사용")
