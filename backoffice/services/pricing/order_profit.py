import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice.db import dialect_insert
from backoffice.models import OrderCost
from backoffice.schemas.shopee import OrderDetail
from backoffice.services.exceptions import PersistenceError
from backoffice.services.pricing.engine import FeeConfig, round_unit, to_decimal

logger = logging.getLogger(__name__)

ORDER_COST_FIELDS = (
    "order_sn",
    "sales_local",
    "commission_local",
    "intl_shipping",
    "local_shipping",
    "product_cost",
    "other_cost",
    "notes",
)

# 주문 동기화가 갱신하는 컬럼
REMOTE_ORDER_FIELDS = (
    "order_sn",
    "order_status",
    "currency",
    "remote_create_time",
    "sales_local",
)


@dataclass(frozen=True)
class OrderProfit:
    order_id: str
    sales: Decimal  # 원천 통화
    commission: Decimal
    intl_shipping: Decimal
    local_shipping: Decimal
    product_cost: Decimal
    other_cost: Decimal
    sales_local: Decimal
    profit_local: Decimal

    @property
    def total_cost(self) -> Decimal:
        return self.commission + self.intl_shipping + self.local_shipping + self.product_cost + self.other_cost

    @property
    def profit(self) -> Decimal:
        return self.sales - self.total_cost

    @property
    def margin(self) -> Decimal:
        return self.profit / self.sales if self.sales > 0 else Decimal(0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "orderId": self.order_id,
            "sales": float(self.sales),
            "salesLocal": float(self.sales_local),
            "commission": float(self.commission),
            "intlShipping": float(self.intl_shipping),
            "localShipping": float(self.local_shipping),
            "productCost": float(self.product_cost),
            "otherCost": float(self.other_cost),
            "totalCost": float(self.total_cost),
            "profit": float(self.profit),
            "profitLocal": float(self.profit_local),
            "margin": float(self.margin),
        }


def calculate_order_profit(order_cost: OrderCost, fee_config: FeeConfig) -> OrderProfit:
    """
    주문 단위 이익 계산. 현지 통화 항목은 round(local * 환율) 로 원천 통화로 환산한다.

    commission_local 이 없으면 round(sales_local * commission_rate),
    intl_shipping / local_shipping 이 없으면 FeeConfig 값을 사용한다.
    """
    fx = to_decimal(fee_config.exchange_rate)
    decimals = fee_config.decimals
    sales_local = to_decimal(order_cost.sales_local)

    if order_cost.commission_local is not None:
        commission_local = to_decimal(order_cost.commission_local)
    else:
        commission_local = round_unit(sales_local * to_decimal(fee_config.commission_rate), decimals)

    local_shipping_local = to_decimal(
        order_cost.local_shipping if order_cost.local_shipping is not None else fee_config.shipping_cost_local
    )
    intl_shipping = to_decimal(
        order_cost.intl_shipping if order_cost.intl_shipping is not None else fee_config.shipping_cost_intl
    )

    sales = round_unit(sales_local * fx)
    commission = round_unit(commission_local * fx)
    local_shipping = round_unit(local_shipping_local * fx)
    product_cost = to_decimal(order_cost.product_cost)
    other_cost = to_decimal(order_cost.other_cost)

    profit = sales - (commission + intl_shipping + local_shipping + product_cost + other_cost)
    return OrderProfit(
        order_id=order_cost.order_id,
        sales=sales,
        commission=commission,
        intl_shipping=intl_shipping,
        local_shipping=local_shipping,
        product_cost=product_cost,
        other_cost=other_cost,
        sales_local=sales_local,
        profit_local=round_unit(profit / fx, decimals),
    )


def summarize_order_profits(profits: Iterable[OrderProfit]) -> dict[str, Any]:
    profits = list(profits)
    sales = sum((p.sales for p in profits), Decimal(0))
    total_cost = sum((p.total_cost for p in profits), Decimal(0))
    profit = sales - total_cost
    return {
        "orders": len(profits),
        "sales": float(sales),
        "totalCost": float(total_cost),
        "profit": float(profit),
        "margin": float(profit / sales) if sales > 0 else 0.0,
    }


class OrderCostRepository:
    def __init__(self, session: Session):
        self.session = session

    def list_for_shop(self, shop_id: int) -> list[OrderCost]:
        stmt = select(OrderCost).where(OrderCost.shop_id == int(shop_id)).order_by(OrderCost.id)
        return list(self.session.scalars(stmt).all())

    def get(self, shop_id: int, order_id: str) -> OrderCost | None:
        stmt = select(OrderCost).where(OrderCost.shop_id == int(shop_id), OrderCost.order_id == str(order_id))
        stmt = stmt.execution_options(populate_existing=True)
        return self.session.scalars(stmt).one_or_none()

    def _upsert(
        self,
        shop_id: int,
        order_id: str,
        fields: dict[str, Any],
        allowed: Iterable[str] = ORDER_COST_FIELDS,
    ) -> None:
        unknown = set(fields) - set(allowed)
        if unknown:
            raise ValueError(f"알 수 없는 필드입니다: {sorted(unknown)}")

        stmt = dialect_insert(self.session, OrderCost).values(shop_id=int(shop_id), order_id=str(order_id), **fields)
        if fields:
            stmt = stmt.on_conflict_do_update(
                index_elements=["shop_id", "order_id"],
                set_={k: stmt.excluded[k] for k in fields},
            )
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=["shop_id", "order_id"])
        self.session.execute(stmt)

    def record_remote_order(self, shop_id: int, order: OrderDetail) -> None:
        """
        동기화된 주문의 원격 컬럼만 upsert. 수기로 입력한 비용 항목은 유지된다.
        커밋은 호출자가 한다 (주문 단위 트랜잭션).
        """
        fields = {
            "order_sn": order.order_sn,
            "order_status": order.order_status or None,
            "currency": order.currency or None,
            "remote_create_time": order.create_time,
            "sales_local": order.total_amount,
        }
        try:
            self._upsert(shop_id, order.order_sn, fields, allowed=REMOTE_ORDER_FIELDS)
        except SQLAlchemyError as e:
            raise PersistenceError(order.order_sn, f"주문 저장 실패: {e}") from e

    def upsert(self, shop_id: int, order_id: str, **fields: Any) -> OrderCost:
        self._upsert(shop_id, order_id, fields)
        self.session.commit()
        return self.get(shop_id, order_id)

    def upsert_many(self, shop_id: int, rows: Iterable[dict[str, Any]]) -> int:
        count = 0
        for row in rows:
            row = dict(row)
            order_id = row.pop("order_id")
            self._upsert(shop_id, order_id, row)
            count += 1
        self.session.commit()
        logger.info(f"[PRICING] 주문 비용 {count}건 저장 shop={shop_id}")
        return count

    def delete(self, shop_id: int, order_id: str) -> bool:
        result = self.session.execute(
            delete(OrderCost).where(OrderCost.shop_id == int(shop_id), OrderCost.order_id == str(order_id))
        )
        self.session.commit()
        return (result.rowcount or 0) > 0
