"""
가격 규칙 평가기

상품과 상점의 활성 규칙 목록에서 단 하나의 규칙(우선순위 내림차순, 동률이면 최근 생성)을 골라
기준가에 조정을 적용한다. 최소 마진 하한을 밑돌면 규칙을 적용하지 않고 기준가를 유지한다.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.models import CatalogItem, PriceRule
from backoffice.services.catalog_repository import CatalogRepository
from backoffice.services.exceptions import ComputationError
from backoffice.services.pricing.engine import FeeConfig, calculate_profit, round_unit, to_decimal
from backoffice.services.pricing.fee_settings import FeeSettingsRepository, to_fee_config
from backoffice.settings import settings

logger = logging.getLogger(__name__)

RULE_TYPES = ("percentage", "fixed")
DIRECTIONS = ("increase", "decrease")


@dataclass(frozen=True)
class RuleEvaluation:
    base_price: Decimal
    new_price: Decimal
    applied: bool
    rule_id: Optional[int] = None
    reason: str = "applied"  # applied, no_rule, no_base_price, margin_floor, non_positive

    def to_dict(self) -> dict[str, Any]:
        return {
            "basePrice": float(self.base_price),
            "newPrice": float(self.new_price),
            "applied": self.applied,
            "ruleId": self.rule_id,
            "reason": self.reason,
        }


def _ts(dt: datetime | None) -> float:
    if dt is None:
        return 0.0
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def rule_matches(rule: PriceRule, item: CatalogItem) -> bool:
    """카테고리 / 태그 필터가 모두 맞으면 True. 필터가 없으면 모든 상품에 적용."""
    if rule.apply_to_category:
        if item.category_id is None or str(item.category_id) != str(rule.apply_to_category):
            return False
    if rule.apply_to_tags:
        item_tags = set(item.tags or [])
        if not item_tags.intersection(rule.apply_to_tags):
            return False
    return True


def select_rule(item: CatalogItem, rules: Iterable[PriceRule]) -> PriceRule | None:
    """
    필터가 맞는 활성 규칙 중 우선순위가 가장 높은 하나. 동률이면 최근 생성.

    item.price_rule_id 는 마지막으로 적용된 규칙의 기록일 뿐 선택에는 쓰지 않는다.
    """
    candidates = [
        r for r in rules
        if r.is_active and int(r.shop_id) == int(item.shop_id) and rule_matches(r, item)
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda r: (r.priority or 0, _ts(r.created_at), r.id or 0))


def apply_adjustment(rule: PriceRule, base_price: Any) -> Decimal:
    """
    percentage: base * (1 ± value)   (value 는 비율, 0.1 = 10%)
    fixed:      base ± value
    이후 [min_price, max_price] 로 제한.
    """
    base = to_decimal(base_price)
    value = to_decimal(rule.adjustment_value)
    sign = Decimal(1) if rule.adjustment_direction == "increase" else Decimal(-1)

    if rule.rule_type == "percentage":
        price = base * (Decimal(1) + sign * value)
    elif rule.rule_type == "fixed":
        price = base + sign * value
    else:
        raise ValueError(f"알 수 없는 rule_type: {rule.rule_type}")

    if rule.min_price is not None:
        price = max(price, to_decimal(rule.min_price))
    if rule.max_price is not None:
        price = min(price, to_decimal(rule.max_price))
    return price


def evaluate(
    item: CatalogItem,
    rules: Iterable[PriceRule],
    base_price: Any = None,
    fee_config: FeeConfig | None = None,
) -> RuleEvaluation:
    base = to_decimal(base_price if base_price is not None else item.current_price)
    if base <= 0:
        return RuleEvaluation(base, base, applied=False, reason="no_base_price")

    rule = select_rule(item, rules)
    if rule is None:
        return RuleEvaluation(base, base, applied=False, reason="no_rule")

    decimals = fee_config.decimals if fee_config is not None else 2
    new_price = round_unit(apply_adjustment(rule, base), decimals)
    if new_price <= 0:
        return RuleEvaluation(base, base, applied=False, rule_id=rule.id, reason="non_positive")

    if rule.min_margin_percent is not None and item.cost_price:
        # cost_price 는 원천 통화, new_price 는 현지 통화 -> 지역 설정 없이는 마진을 낼 수 없다
        if fee_config is None:
            raise ComputationError(
                "최소 마진 검사에는 지역 설정(FeeConfig)이 필요합니다.",
                context={"item_id": item.item_id, "rule_id": rule.id},
            )
        margin = calculate_profit(item.cost_price, new_price, fee_config).margin
        if margin * 100 < to_decimal(rule.min_margin_percent):
            logger.info(
                f"[PRICING] 최소 마진 미달로 규칙 미적용 item={item.item_id} rule={rule.id} "
                f"margin={float(margin):.4f} floor={rule.min_margin_percent}%"
            )
            return RuleEvaluation(base, base, applied=False, rule_id=rule.id, reason="margin_floor")

    return RuleEvaluation(base, new_price, applied=True, rule_id=rule.id)


class PriceRuleRepository:
    def __init__(self, session: Session):
        self.session = session

    def list_for_shop(self, shop_id: int, active_only: bool = False) -> list[PriceRule]:
        stmt = select(PriceRule).where(PriceRule.shop_id == int(shop_id))
        if active_only:
            stmt = stmt.where(PriceRule.is_active.is_(True))
        stmt = stmt.order_by(PriceRule.priority.desc(), PriceRule.created_at.desc())
        return list(self.session.scalars(stmt).all())

    def create(self, shop_id: int, name: str, rule_type: str, **fields: Any) -> PriceRule:
        if rule_type not in RULE_TYPES:
            raise ValueError(f"rule_type 은 {RULE_TYPES} 중 하나여야 합니다.")
        direction = fields.get("adjustment_direction", "decrease")
        if direction not in DIRECTIONS:
            raise ValueError(f"adjustment_direction 은 {DIRECTIONS} 중 하나여야 합니다.")
        rule = PriceRule(shop_id=int(shop_id), name=name, rule_type=rule_type, **fields)
        self.session.add(rule)
        self.session.commit()
        return rule

    def delete(self, rule_id: int) -> bool:
        rule = self.session.get(PriceRule, rule_id)
        if rule is None:
            return False
        CatalogRepository(self.session).clear_price_rule(rule_id)
        self.session.delete(rule)
        self.session.commit()
        return True


class PriceRuleService:
    """상품 단위 규칙 평가 + (선택) custom_price 반영"""

    def __init__(self, session: Session):
        self.session = session
        self.rules = PriceRuleRepository(session)
        self.catalog = CatalogRepository(session)

    def evaluate_item(
        self,
        item_id: str,
        fee_config: FeeConfig | None = None,
        base_price: Any = None,
        apply: bool = False,
    ) -> RuleEvaluation | None:
        item = self.catalog.get(item_id)
        if item is None:
            return None

        if fee_config is None:
            row = FeeSettingsRepository(self.session).get_row(settings.shopee_default_region)
            fee_config = to_fee_config(row) if row is not None else None

        evaluation = evaluate(item, self.rules.list_for_shop(item.shop_id, active_only=True), base_price, fee_config)
        if apply and evaluation.applied:
            self.catalog.apply_price_evaluation(item, float(evaluation.new_price), evaluation.rule_id)
        return evaluation
