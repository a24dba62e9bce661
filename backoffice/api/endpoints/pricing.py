"""
가격 API

권장 판매가 계산, 지역 수수료 설정, 상품 가격 규칙 평가, 주문 이익 집계.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from backoffice.api.deps import http_error
from backoffice.db import get_session
from backoffice.schemas.pricing import (
    EvaluatePriceRequest,
    RecommendPriceRequest,
    RegionSettingResponse,
    RegionSettingUpdate,
)
from backoffice.services.exceptions import ComputationError
from backoffice.services.order_sync import map_order_status
from backoffice.services.pricing.engine import recommend_price
from backoffice.services.pricing.fee_settings import FeeSettingsRepository
from backoffice.services.pricing.order_profit import (
    OrderCostRepository,
    calculate_order_profit,
    summarize_order_profits,
)
from backoffice.services.pricing.rules import PriceRuleService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/recommend")
def recommend(request: RecommendPriceRequest, session: Session = Depends(get_session)) -> dict:
    """
    권장 판매가 계산

    원가가 0 이하이면 recommendation 은 null 입니다 (가격 미설정).
    총 수수료율 + 목표 마진이 100% 이상이면 422.
    """
    try:
        fee_config = FeeSettingsRepository(session).get(request.region)
        result = recommend_price(request.cost_price, fee_config, request.margin_target)
    except ComputationError as e:
        raise http_error(e) from e
    return {
        "region": fee_config.region,
        "recommendation": result.to_dict() if result else None,
    }


@router.get("/regions", response_model=List[RegionSettingResponse])
def list_regions(session: Session = Depends(get_session)):
    return FeeSettingsRepository(session).list_all()


@router.put("/regions/{region}", response_model=RegionSettingResponse)
def update_region(region: str, payload: RegionSettingUpdate, session: Session = Depends(get_session)):
    fields = payload.model_dump(exclude_none=True)
    try:
        return FeeSettingsRepository(session).update(region, **fields)
    except ComputationError as e:
        raise http_error(e) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.post("/products/{item_id}/evaluate")
def evaluate_product(item_id: str, payload: EvaluatePriceRequest, session: Session = Depends(get_session)) -> dict:
    fee_config = None
    try:
        if payload.region:
            fee_config = FeeSettingsRepository(session).get(payload.region)
        evaluation = PriceRuleService(session).evaluate_item(
            item_id,
            fee_config=fee_config,
            base_price=payload.base_price,
            apply=payload.apply,
        )
    except ComputationError as e:
        raise http_error(e) from e

    if evaluation is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return evaluation.to_dict()


@router.get("/orders/{shop_id}/profit")
def order_profit(shop_id: int, region: str = "TW", session: Session = Depends(get_session)) -> dict:
    try:
        fee_config = FeeSettingsRepository(session).get(region)
    except ComputationError as e:
        raise http_error(e) from e

    order_costs = OrderCostRepository(session).list_for_shop(shop_id)
    profits = [calculate_order_profit(oc, fee_config) for oc in order_costs]
    return {
        "orders": [
            {**p.to_dict(), "orderStatus": oc.order_status, "status": map_order_status(oc.order_status)}
            for oc, p in zip(order_costs, profits)
        ],
        "summary": summarize_order_profits(profits),
    }
