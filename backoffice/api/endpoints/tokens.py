import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from backoffice.api.deps import get_shopee_client, http_error
from backoffice.db import get_session
from backoffice.models import ShopToken
from backoffice.schemas.pricing import CredentialResponse, TokenExchangeRequest
from backoffice.services.exceptions import MarketplaceError
from backoffice.services.token_service import (
    CredentialState,
    CredentialStore,
    TokenLifecycleManager,
    credential_status,
)
from backoffice.shopee_client import ShopeeClient, mask_secret

router = APIRouter()
logger = logging.getLogger(__name__)


def _credential_out(credential: ShopToken) -> dict:
    state = credential_status(credential, datetime.now(timezone.utc))
    return {
        "shop_id": credential.shop_id,
        "region": credential.region,
        "shop_name": credential.shop_name,
        "access_token": mask_secret(credential.access_token),
        "access_token_expires_at": credential.access_token_expires_at,
        "refresh_token_expires_at": credential.refresh_token_expires_at,
        "state": state.value,
        "is_expired": state != CredentialState.AUTHORIZED,
    }


@router.get("/auth-url")
def get_auth_url(
    redirect_url: str | None = Query(default=None, alias="redirectUrl"),
    client: ShopeeClient = Depends(get_shopee_client),
) -> dict:
    """상점 인가 페이지 URL"""
    return {"url": client.build_auth_url(redirect_url)}


@router.post("/exchange", response_model=CredentialResponse)
async def exchange_code(
    payload: TokenExchangeRequest,
    session: Session = Depends(get_session),
    client: ShopeeClient = Depends(get_shopee_client),
):
    manager = TokenLifecycleManager(session, client)
    try:
        credential = await manager.exchange_code(payload.code, payload.shop_id, region=payload.region)
    except MarketplaceError as e:
        raise http_error(e) from e
    return _credential_out(credential)


@router.get("/{shop_id}", response_model=CredentialResponse)
def get_credential(shop_id: int, session: Session = Depends(get_session)):
    credential = CredentialStore(session).get(shop_id)
    if credential is None:
        raise HTTPException(status_code=404, detail="Credential not found")
    return _credential_out(credential)


@router.post("/{shop_id}/refresh", response_model=CredentialResponse)
async def refresh_credential(
    shop_id: int,
    session: Session = Depends(get_session),
    client: ShopeeClient = Depends(get_shopee_client),
):
    manager = TokenLifecycleManager(session, client)
    try:
        credential = await manager.refresh(shop_id)
    except MarketplaceError as e:
        raise http_error(e) from e
    return _credential_out(credential)


@router.delete("/{shop_id}")
def delete_credential(shop_id: int, session: Session = Depends(get_session)) -> dict:
    deleted = CredentialStore(session).delete(shop_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Credential not found")
    logger.info(f"[TOKEN] 자격 증명 삭제 shop={shop_id}")
    return {"deleted": True, "shop_id": shop_id}
