from datetime import datetime
import uuid

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Float, ForeignKey, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


# --- 인증 / 상점 ---

class ShopToken(Base):
    """
    상점별 액세스/리프레시 토큰 (Credential Store 의 기본 레코드).
    """
    __tablename__ = "tokens"

    shop_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=False)
    access_token_expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    refresh_token_expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    shop_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    region: Mapped[str] = mapped_column(Text, nullable=False, default="TW")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Shop(Base):
    """
    상점 운영 메타데이터. 토큰 상태를 미러링한다 (보조 레코드).
    """
    __tablename__ = "shops"

    shop_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    shop_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    region: Mapped[str] = mapped_column(Text, nullable=False, default="TW")
    access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# --- 카탈로그 ---

class CatalogItem(Base):
    """
    마켓 상품의 로컬 미러.
    원격 컬럼은 동기화가 덮어쓰고, 로컬 소유 컬럼(cost_price 등)은 동기화가 건드리지 않는다.
    """
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    shop_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)

    # 원격 컬럼
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    sku: Mapped[str | None] = mapped_column(Text, nullable=True)
    category_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    images: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    attributes: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    original_price: Mapped[float] = mapped_column(Float, default=0)
    current_price: Mapped[float] = mapped_column(Float, default=0)
    currency: Mapped[str] = mapped_column(Text, default="TWD")
    stock: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(Text, default="active")  # active, inactive, banned, deleted, unknown
    marketplace_status: Mapped[str | None] = mapped_column(Text, nullable=True)  # NORMAL, UNLIST ...
    sold: Mapped[int] = mapped_column(Integer, default=0)
    views: Mapped[int] = mapped_column(Integer, default=0)
    likes: Mapped[int] = mapped_column(Integer, default=0)
    rating_star: Mapped[float] = mapped_column(Float, default=0)
    remote_create_time: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    remote_update_time: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # 로컬 소유 컬럼
    cost_price: Mapped[float | None] = mapped_column(Float, nullable=True)  # 원가 (원천 통화, JPY)
    source_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_urls: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    custom_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    price_rule_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("price_rules.id"), nullable=True)
    tags: Mapped[list | None] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# --- 가격 ---

class RegionSetting(Base):
    """
    지역(마켓 로케일)별 통화/수수료/배송비 설정. 가격 엔진의 FeeConfig 원본.
    """
    __tablename__ = "region_settings"

    region: Mapped[str] = mapped_column(Text, primary_key=True)
    currency: Mapped[str] = mapped_column(Text, nullable=False)
    currency_symbol: Mapped[str] = mapped_column(Text, nullable=False, default="")
    decimals: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    exchange_rate: Mapped[float] = mapped_column(Float, nullable=False)  # 현지 통화 1단위 = 원천 통화 n
    commission_rate: Mapped[float] = mapped_column(Float, default=0.0)
    service_fee_rate: Mapped[float] = mapped_column(Float, default=0.0)
    transaction_fee_rate: Mapped[float] = mapped_column(Float, default=0.0)
    shipping_cost_local: Mapped[float] = mapped_column(Float, default=0.0)  # 현지 통화
    shipping_cost_intl: Mapped[float] = mapped_column(Float, default=0.0)  # 원천 통화
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class PriceRule(Base):
    """
    가격 조정 규칙. priority 내림차순으로 평가한다.
    """
    __tablename__ = "price_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    rule_type: Mapped[str] = mapped_column(Text, nullable=False)  # percentage, fixed
    adjustment_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    adjustment_direction: Mapped[str] = mapped_column(Text, nullable=False, default="decrease")  # increase, decrease
    min_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    min_margin_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    apply_to_category: Mapped[str | None] = mapped_column(Text, nullable=True)
    apply_to_tags: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class PriceHistory(Base):
    """
    custom_price 변경 이력.
    """
    __tablename__ = "price_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.id"), nullable=False)
    item_id: Mapped[str] = mapped_column(Text, nullable=False)
    old_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    new_price: Mapped[float] = mapped_column(Float, nullable=False)
    change_reason: Mapped[str] = mapped_column(Text, nullable=False, default="manual")  # manual, price_rule
    price_rule_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class OrderCost(Base):
    """
    주문별 비용 대사 정보. 현지 통화(sales/commission/local_shipping)와 원천 통화(나머지)가 섞여 있다.
    """
    __tablename__ = "order_costs"
    __table_args__ = (UniqueConstraint("shop_id", "order_id", name="uq_order_costs_shop_order"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    order_id: Mapped[str] = mapped_column(Text, nullable=False)
    order_sn: Mapped[str | None] = mapped_column(Text, nullable=True)
    # 주문 동기화가 채우는 원격 컬럼 (비용 항목은 건드리지 않는다)
    order_status: Mapped[str | None] = mapped_column(Text, nullable=True)
    currency: Mapped[str | None] = mapped_column(Text, nullable=True)
    remote_create_time: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    sales_local: Mapped[float] = mapped_column(Float, default=0)
    commission_local: Mapped[float | None] = mapped_column(Float, nullable=True)
    intl_shipping: Mapped[float | None] = mapped_column(Float, nullable=True)
    local_shipping: Mapped[float | None] = mapped_column(Float, nullable=True)
    product_cost: Mapped[float] = mapped_column(Float, default=0)
    other_cost: Mapped[float] = mapped_column(Float, default=0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# --- 동기화 감사 ---

class SyncRun(Base):
    __tablename__ = "sync_runs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    shop_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    sync_type: Mapped[str] = mapped_column(Text, nullable=False)  # products, orders
    status: Mapped[str] = mapped_column(Text, nullable=False)  # running, success, partial, failure

    items_fetched: Mapped[int] = mapped_column(Integer, default=0)
    items_synced: Mapped[int] = mapped_column(Integer, default=0)
    items_failed: Mapped[int] = mapped_column(Integer, default=0)
    api_calls: Mapped[int] = mapped_column(Integer, default=0)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    meta: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)


class SyncRunError(Base):
    __tablename__ = "sync_run_errors"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    run_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("sync_runs.id"), nullable=False)

    entity_type: Mapped[str] = mapped_column(Text, nullable=False)  # item, api, system
    entity_id: Mapped[str | None] = mapped_column(Text, nullable=True)

    error_code: Mapped[str | None] = mapped_column(Text, nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    stack: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
