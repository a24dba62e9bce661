"""
가격 엔진

원가(원천 통화, JPY) + 지역 FeeConfig + 목표 마진 -> 권장 판매가 / 수수료 / 이익.
권장가와 이익은 같은 고정비 기준을 사용한다:
    fixed_cost = 원가 + 국제배송비 + round(현지배송비 * 환율)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Any, Mapping

from backoffice.services.exceptions import ComputationError

logger = logging.getLogger(__name__)


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value if value is not None else 0))


def _unit(decimals: int) -> Decimal:
    return Decimal(1).scaleb(-int(decimals))


def round_unit(value: Decimal, decimals: int = 0) -> Decimal:
    """통화 최소 단위로 반올림 (half-up)"""
    return value.quantize(_unit(decimals), rounding=ROUND_HALF_UP)


def ceil_unit(value: Decimal, decimals: int = 0) -> Decimal:
    """통화 최소 단위로 올림"""
    return value.quantize(_unit(decimals), rounding=ROUND_CEILING)


@dataclass(frozen=True)
class FeeConfig:
    """
    지역별 수수료/환율 설정 (읽기 전용 값 객체).

    exchange_rate: 현지 통화 1단위 = 원천 통화 n (예: 1 TWD = 4.7 JPY)
    shipping_cost_local: 현지 통화, shipping_cost_intl: 원천 통화
    """
    currency: str
    exchange_rate: float
    commission_rate: float = 0.0
    service_fee_rate: float = 0.0
    transaction_fee_rate: float = 0.0
    shipping_cost_local: float = 0.0
    shipping_cost_intl: float = 0.0
    symbol: str = ""
    decimals: int = 0
    region: str | None = None

    @property
    def total_fee_rate(self) -> Decimal:
        return to_decimal(self.commission_rate) + to_decimal(self.service_fee_rate) + to_decimal(self.transaction_fee_rate)

    def validate(self) -> None:
        if to_decimal(self.exchange_rate) <= 0:
            raise ComputationError("exchange_rate 는 0보다 커야 합니다.", context={"region": self.region})
        for name in ("commission_rate", "service_fee_rate", "transaction_fee_rate", "shipping_cost_local", "shipping_cost_intl"):
            if to_decimal(getattr(self, name)) < 0:
                raise ComputationError(f"{name} 는 0 이상이어야 합니다.", context={"region": self.region})
        if self.decimals < 0:
            raise ComputationError("decimals 는 0 이상이어야 합니다.", context={"region": self.region})


@dataclass(frozen=True)
class FeeBreakdown:
    """현지 통화 기준 수수료 내역"""
    commission: Decimal
    service_fee: Decimal
    transaction_fee: Decimal

    @property
    def total(self) -> Decimal:
        return self.commission + self.service_fee + self.transaction_fee

    def to_dict(self) -> dict[str, float]:
        return {
            "commission": float(self.commission),
            "serviceFee": float(self.service_fee),
            "transactionFee": float(self.transaction_fee),
            "total": float(self.total),
        }


@dataclass(frozen=True)
class ProfitBreakdown:
    price_local: Decimal
    sales: Decimal  # 원천 통화 환산 매출
    fees: FeeBreakdown
    fees_converted: Decimal  # 원천 통화 환산 수수료
    fixed_cost: Decimal
    profit: Decimal  # 원천 통화
    profit_local: Decimal
    margin: Decimal  # profit / sales

    def to_dict(self) -> dict[str, Any]:
        return {
            "priceLocal": float(self.price_local),
            "sales": float(self.sales),
            "feeBreakdown": self.fees.to_dict(),
            "feesConverted": float(self.fees_converted),
            "fixedCost": float(self.fixed_cost),
            "profit": float(self.profit),
            "profitLocal": float(self.profit_local),
            "margin": float(self.margin),
        }


@dataclass(frozen=True)
class PriceRecommendation:
    recommended_price: Decimal  # 원천 통화
    price_local: Decimal  # 현지 통화 판매가
    currency: str
    total_fee_rate: Decimal
    revenue_rate: Decimal
    fixed_cost: Decimal
    breakdown: ProfitBreakdown

    @property
    def fee_breakdown(self) -> FeeBreakdown:
        return self.breakdown.fees

    @property
    def profit(self) -> Decimal:
        return self.breakdown.profit

    def to_dict(self) -> dict[str, Any]:
        return {
            "recommendedPrice": float(self.recommended_price),
            "priceLocal": float(self.price_local),
            "currency": self.currency,
            "totalFeeRate": float(self.total_fee_rate),
            "revenueRate": float(self.revenue_rate),
            "fixedCost": float(self.fixed_cost),
            "feeBreakdown": self.fee_breakdown.to_dict(),
            "profit": float(self.profit),
            "profitLocal": float(self.breakdown.profit_local),
            "margin": float(self.breakdown.margin),
        }


def fixed_cost(cost_price: Any, fee_config: FeeConfig) -> Decimal:
    fx = to_decimal(fee_config.exchange_rate)
    local_shipping_converted = round_unit(to_decimal(fee_config.shipping_cost_local) * fx)
    return to_decimal(cost_price) + to_decimal(fee_config.shipping_cost_intl) + local_shipping_converted


def calculate_profit(cost_price: Any, selling_price_local: Any, fee_config: FeeConfig) -> ProfitBreakdown:
    """
    현지 판매가 기준 이익 역산 (recommend_price 와 동일한 고정비 기준).
    """
    fee_config.validate()
    fx = to_decimal(fee_config.exchange_rate)
    decimals = fee_config.decimals
    price_local = to_decimal(selling_price_local)

    fees = FeeBreakdown(
        commission=round_unit(price_local * to_decimal(fee_config.commission_rate), decimals),
        service_fee=round_unit(price_local * to_decimal(fee_config.service_fee_rate), decimals),
        transaction_fee=round_unit(price_local * to_decimal(fee_config.transaction_fee_rate), decimals),
    )
    fixed = fixed_cost(cost_price, fee_config)
    sales = round_unit(price_local * fx)
    fees_converted = round_unit(fees.total * fx)
    profit = sales - fees_converted - fixed

    return ProfitBreakdown(
        price_local=price_local,
        sales=sales,
        fees=fees,
        fees_converted=fees_converted,
        fixed_cost=fixed,
        profit=profit,
        profit_local=round_unit(profit / fx, decimals),
        margin=(profit / sales) if sales > 0 else Decimal(0),
    )


def recommend_price(cost_price: Any, fee_config: FeeConfig, margin_target: Any) -> PriceRecommendation | None:
    """
    권장 판매가 산출 (역산식)

    RP = fixed_cost / (1 - 총수수료율 - 목표마진율)

    원가가 0 이하이면 None (가격 미설정). revenue_rate <= 0 이면 ComputationError.
    """
    fee_config.validate()
    cost = to_decimal(cost_price)
    if cost <= 0:
        return None

    margin = to_decimal(margin_target)
    total_fee_rate = fee_config.total_fee_rate
    revenue_rate = Decimal(1) - total_fee_rate - margin
    if revenue_rate <= 0:
        logger.error(f"[PRICING] Target margin ({margin}) + Fee ({total_fee_rate}) exceeds 100% (region={fee_config.region})")
        raise ComputationError(
            "총 수수료율과 목표 마진의 합이 100% 이상입니다.",
            context={
                "total_fee_rate": float(total_fee_rate),
                "margin_target": float(margin),
                "region": fee_config.region,
            },
        )

    fx = to_decimal(fee_config.exchange_rate)
    fixed = fixed_cost(cost, fee_config)
    recommended = ceil_unit(fixed / revenue_rate)
    price_local = ceil_unit(fixed / (revenue_rate * fx), fee_config.decimals)

    return PriceRecommendation(
        recommended_price=recommended,
        price_local=price_local,
        currency=fee_config.currency,
        total_fee_rate=total_fee_rate,
        revenue_rate=revenue_rate,
        fixed_cost=fixed,
        breakdown=calculate_profit(cost, price_local, fee_config),
    )


def recommend_by_region(
    cost_price: Any,
    fee_configs: Mapping[str, FeeConfig],
    margin_target: Any,
) -> dict[str, PriceRecommendation | ComputationError | None]:
    """지역별 독립 계산. 한 지역의 계산 불가가 다른 지역에 영향을 주지 않는다."""
    results: dict[str, PriceRecommendation | ComputationError | None] = {}
    for region, config in fee_configs.items():
        try:
            results[region] = recommend_price(cost_price, config, margin_target)
        except ComputationError as e:
            results[region] = e
    return results
