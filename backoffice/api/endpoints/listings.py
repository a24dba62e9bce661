"""
마켓 상품 수정 API

로컬 가격 / 재고 / 상품 정보를 Shopee 에 전송합니다.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from backoffice.api.deps import get_shopee_client, http_error
from backoffice.db import get_session
from backoffice.schemas.pricing import ListingUpdateRequest
from backoffice.services.exceptions import MarketplaceError
from backoffice.services.listing_update import ListingUpdateService
from backoffice.shopee_client import ShopeeClient

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/{item_id}/update")
async def update_listing(
    item_id: str,
    payload: ListingUpdateRequest,
    session: Session = Depends(get_session),
    client: ShopeeClient = Depends(get_shopee_client),
):
    """
    상품 수정 전송

    일부 항목만 실패하면 207 과 함께 항목별 결과를 돌려줍니다.
    """
    service = ListingUpdateService(session, client)
    try:
        result = await service.push(
            item_id,
            update_type=payload.update_type,
            price=payload.price,
            stock=payload.stock,
            item_name=payload.item_name,
            description=payload.description,
            access_token=payload.access_token,
        )
    except MarketplaceError as e:
        logger.error(f"[LISTING] item={item_id} 수정 전송 실패: {e.message}")
        raise http_error(e) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    if result is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return JSONResponse(status_code=207 if result.errors else 200, content=result.to_dict())
