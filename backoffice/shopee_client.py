from __future__ import annotations

import logging
import urllib.parse
from typing import Any, Iterable

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from backoffice.schemas.shopee import (
    ItemBaseInfoResponse,
    ItemListResponse,
    OrderDetailResponse,
    OrderListResponse,
    TokenResponse,
    UpdateResponse,
)
from backoffice.services.exceptions import TransientUpstreamError
from backoffice.settings import settings
from backoffice.shopee_signer import ShopeeSigner

logger = logging.getLogger(__name__)

PATH_AUTH_PARTNER = "/api/v2/shop/auth_partner"
PATH_TOKEN_GET = "/api/v2/auth/token/get"
PATH_ACCESS_TOKEN_GET = "/api/v2/auth/access_token/get"
PATH_GET_ITEM_LIST = "/api/v2/product/get_item_list"
PATH_GET_ITEM_BASE_INFO = "/api/v2/product/get_item_base_info"
PATH_UPDATE_ITEM = "/api/v2/product/update_item"
PATH_UPDATE_PRICE = "/api/v2/product/update_price"
PATH_UPDATE_STOCK = "/api/v2/product/update_stock"
PATH_GET_ORDER_LIST = "/api/v2/order/get_order_list"
PATH_GET_ORDER_DETAIL = "/api/v2/order/get_order_detail"

ORDER_DETAIL_OPTIONAL_FIELDS = ("buyer_username", "item_list", "total_amount")


def mask_secret(value: str | None, keep_start: int = 4, keep_end: int = 4) -> str | None:
    if not value:
        return None

    s = str(value)
    if len(s) <= keep_start + keep_end:
        return "*" * len(s)

    return f"{s[:keep_start]}****{s[-keep_end:]}"


class ShopeeClient:
    """
    Shopee Open Platform v2 비동기 클라이언트.

    - 모든 요청은 쿼리 파라미터(partner_id, timestamp, sign[, access_token, shop_id])로 인증
    - 네트워크 오류 / 429 / 5xx / 비 JSON 응답은 TransientUpstreamError 로 올려 tenacity 가 재시도
    - 응답 본문의 error 필드(비즈니스 에러)는 재시도하지 않고 호출자가 판단
    """

    def __init__(
        self,
        partner_id: int | str | None = None,
        partner_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._signer = ShopeeSigner(
            partner_id if partner_id is not None else settings.shopee_partner_id,
            partner_key if partner_key is not None else settings.shopee_partner_key,
        )
        self._base_url = (base_url or settings.shopee_api_base_url).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout or settings.shopee_http_timeout, connect=10.0),
            transport=transport,
        )

    @property
    def partner_id(self) -> int:
        return self._signer.partner_id

    async def __aenter__(self) -> "ShopeeClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @retry(
        stop=stop_after_attempt(settings.shopee_retry_count),
        wait=wait_exponential(multiplier=1, min=settings.shopee_retry_wait_min, max=settings.shopee_retry_wait_max),
        retry=retry_if_exception_type(TransientUpstreamError),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            f"[SHOPEE] 재시도 중... ({retry_state.attempt_number}회째): {retry_state.outcome.exception()}"
        ),
    )
    async def _send(
        self,
        method: str,
        path: str,
        params: dict[str, Any],
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            resp = await self._client.request(method, path, params=params, json=payload)
        except httpx.RequestError as e:
            raise TransientUpstreamError(f"{path} 요청 실패: {e}", context={"path": path}) from e

        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientUpstreamError(
                f"{path} HTTP {resp.status_code}",
                status_code=resp.status_code,
                context={"path": path},
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise TransientUpstreamError(
                f"{path} 응답이 JSON 이 아닙니다: {resp.text[:200]}",
                status_code=resp.status_code,
                context={"path": path},
            ) from e

        if not isinstance(data, dict):
            raise TransientUpstreamError(
                f"{path} 응답 형식 오류", status_code=resp.status_code, context={"path": path}
            )

        logger.debug(f"[SHOPEE] {method} {path} -> {resp.status_code} error={data.get('error')!r}")
        return data

    # --------------------------------------------------------------------------
    # 인증 (partner-scoped)
    # --------------------------------------------------------------------------

    def build_auth_url(self, redirect_url: str | None = None, timestamp: int | None = None) -> str:
        """상점 인가 페이지 URL (auth_partner)"""
        params = self._signer.partner_params(PATH_AUTH_PARTNER, timestamp)
        params["redirect"] = redirect_url or settings.shopee_redirect_url
        return f"{self._base_url}{PATH_AUTH_PARTNER}?{urllib.parse.urlencode(params)}"

    async def get_token(self, code: str, shop_id: int) -> TokenResponse:
        """인가 코드로 최초 토큰 발급"""
        params = self._signer.partner_params(PATH_TOKEN_GET)
        payload = {"code": code, "shop_id": int(shop_id), "partner_id": self.partner_id}
        data = await self._send("POST", PATH_TOKEN_GET, params, payload)
        return TokenResponse.model_validate(data)

    async def refresh_access_token(self, refresh_token: str, shop_id: int) -> TokenResponse:
        """refresh_token 으로 액세스 토큰 갱신"""
        params = self._signer.partner_params(PATH_ACCESS_TOKEN_GET)
        payload = {"refresh_token": refresh_token, "shop_id": int(shop_id), "partner_id": self.partner_id}
        logger.debug(f"[SHOPEE] refresh shop={shop_id} refresh_token={mask_secret(refresh_token)}")
        data = await self._send("POST", PATH_ACCESS_TOKEN_GET, params, payload)
        return TokenResponse.model_validate(data)

    # --------------------------------------------------------------------------
    # 상품 (shop-scoped)
    # --------------------------------------------------------------------------

    async def get_item_list(
        self,
        shop_id: int,
        access_token: str,
        offset: int = 0,
        page_size: int = 50,
        item_status: Iterable[str] = ("NORMAL", "UNLIST"),
    ) -> ItemListResponse:
        params = self._signer.shop_params(PATH_GET_ITEM_LIST, access_token, shop_id)
        params.update({
            "offset": offset,
            "page_size": page_size,
            # 반복 파라미터: item_status=NORMAL&item_status=UNLIST
            "item_status": list(item_status),
        })
        data = await self._send("GET", PATH_GET_ITEM_LIST, params)
        return ItemListResponse.model_validate(data)

    async def get_item_base_info(self, shop_id: int, access_token: str, item_ids: list[int]) -> ItemBaseInfoResponse:
        params = self._signer.shop_params(PATH_GET_ITEM_BASE_INFO, access_token, shop_id)
        params["item_id_list"] = ",".join(str(i) for i in item_ids)
        data = await self._send("GET", PATH_GET_ITEM_BASE_INFO, params)
        return ItemBaseInfoResponse.model_validate(data)

    async def update_item(self, shop_id: int, access_token: str, item_id: int | str, **fields: Any) -> UpdateResponse:
        """상품명 / 설명 등 기본 정보 수정 (None 인 필드는 보내지 않음)"""
        params = self._signer.shop_params(PATH_UPDATE_ITEM, access_token, shop_id)
        payload = {"item_id": int(item_id), **{k: v for k, v in fields.items() if v is not None}}
        data = await self._send("POST", PATH_UPDATE_ITEM, params, payload)
        return UpdateResponse.model_validate(data)

    async def update_price(
        self,
        shop_id: int,
        access_token: str,
        item_id: int | str,
        price: float,
        model_id: int = 0,
    ) -> UpdateResponse:
        params = self._signer.shop_params(PATH_UPDATE_PRICE, access_token, shop_id)
        payload = {
            "item_id": int(item_id),
            "price_list": [{"model_id": model_id, "original_price": price}],
        }
        data = await self._send("POST", PATH_UPDATE_PRICE, params, payload)
        return UpdateResponse.model_validate(data)

    async def update_stock(
        self,
        shop_id: int,
        access_token: str,
        item_id: int | str,
        stock: int,
        model_id: int = 0,
    ) -> UpdateResponse:
        params = self._signer.shop_params(PATH_UPDATE_STOCK, access_token, shop_id)
        payload = {
            "item_id": int(item_id),
            "stock_list": [{"model_id": model_id, "seller_stock": [{"stock": int(stock)}]}],
        }
        data = await self._send("POST", PATH_UPDATE_STOCK, params, payload)
        return UpdateResponse.model_validate(data)

    # --------------------------------------------------------------------------
    # 주문 (shop-scoped)
    # --------------------------------------------------------------------------

    async def get_order_list(
        self,
        shop_id: int,
        access_token: str,
        time_from: int,
        time_to: int,
        cursor: str = "",
        page_size: int = 50,
        order_status: str | None = None,
        time_range_field: str = "create_time",
    ) -> OrderListResponse:
        """
        주문 목록 (cursor 페이지네이션). time_from ~ time_to 는 최대 15일.
        order_status 가 없거나 "ALL" 이면 전체 상태.
        """
        params = self._signer.shop_params(PATH_GET_ORDER_LIST, access_token, shop_id)
        params.update({
            "time_range_field": time_range_field,
            "time_from": int(time_from),
            "time_to": int(time_to),
            "page_size": page_size,
        })
        if cursor:
            params["cursor"] = cursor
        if order_status and order_status != "ALL":
            params["order_status"] = order_status
        data = await self._send("GET", PATH_GET_ORDER_LIST, params)
        return OrderListResponse.model_validate(data)

    async def get_order_detail(
        self,
        shop_id: int,
        access_token: str,
        order_sns: list[str],
        optional_fields: Iterable[str] = ORDER_DETAIL_OPTIONAL_FIELDS,
    ) -> OrderDetailResponse:
        params = self._signer.shop_params(PATH_GET_ORDER_DETAIL, access_token, shop_id)
        params["order_sn_list"] = ",".join(order_sns)
        params["response_optional_fields"] = ",".join(optional_fields)
        data = await self._send("GET", PATH_GET_ORDER_DETAIL, params)
        return OrderDetailResponse.model_validate(data)
