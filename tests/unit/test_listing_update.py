"""
상품 수정 전송 테스트.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from backoffice.schemas.shopee import UpdateResponse
from backoffice.services.catalog_repository import CatalogRepository
from backoffice.services.exceptions import CredentialNotFoundError
from backoffice.services.listing_update import ListingUpdateService
from backoffice.services.token_service import CredentialStore

SHOP_ID = 55501


def _mock_client(**errors) -> MagicMock:
    client = MagicMock()
    for method in ("update_item", "update_price", "update_stock"):
        error = errors.get(method, "")
        setattr(
            client,
            method,
            AsyncMock(return_value=UpdateResponse(error=error, message="failed" if error else "", request_id=f"r-{method}")),
        )
    return client


def _seed(session, **fields):
    return CatalogRepository(session).update_local_fields(SHOP_ID, "1001", **fields)


@pytest.mark.integration
class TestListingUpdateService:

    @pytest.mark.asyncio
    async def test_price_defaults_to_custom_price(self, test_session):
        _seed(test_session, custom_price=1290)
        client = _mock_client()

        result = await ListingUpdateService(test_session, client).push("1001", update_type="price", access_token="tok")

        client.update_price.assert_awaited_once_with(SHOP_ID, "tok", "1001", 1290.0)
        client.update_item.assert_not_awaited()
        client.update_stock.assert_not_awaited()
        assert result.status == "success"
        assert result.to_dict()["results"]["price"]["requestId"] == "r-update_price"

    @pytest.mark.asyncio
    async def test_explicit_price_and_stock(self, test_session):
        _seed(test_session, custom_price=1290)
        client = _mock_client()

        result = await ListingUpdateService(test_session, client).push("1001", price=999, stock=7, access_token="tok")

        client.update_price.assert_awaited_once_with(SHOP_ID, "tok", "1001", 999.0)
        client.update_stock.assert_awaited_once_with(SHOP_ID, "tok", "1001", 7)
        # 상품명/설명이 없으면 update_item 은 보내지 않는다
        client.update_item.assert_not_awaited()
        assert sorted(result.results) == ["price", "stock"]

    @pytest.mark.asyncio
    async def test_item_fields(self, test_session):
        _seed(test_session)
        client = _mock_client()

        await ListingUpdateService(test_session, client).push(
            "1001", update_type="item", item_name="새 상품명", access_token="tok"
        )

        client.update_item.assert_awaited_once_with(SHOP_ID, "tok", "1001", item_name="새 상품명", description=None)

    @pytest.mark.asyncio
    async def test_partial_error(self, test_session):
        _seed(test_session, custom_price=1290)
        client = _mock_client(update_stock="error_param")

        result = await ListingUpdateService(test_session, client).push("1001", stock=3, access_token="tok")

        assert result.status == "partial_error"
        assert result.errors == {"stock": "error_param"}
        body = result.to_dict()
        assert body["results"]["price"]["error"] == ""
        assert body["results"]["stock"]["error"] == "error_param"

    @pytest.mark.asyncio
    async def test_nothing_to_send(self, test_session):
        _seed(test_session)
        client = _mock_client()

        with pytest.raises(ValueError):
            await ListingUpdateService(test_session, client).push("1001", update_type="price", access_token="tok")
        client.update_price.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_update_type_and_price(self, test_session):
        _seed(test_session)
        service = ListingUpdateService(test_session, _mock_client())

        with pytest.raises(ValueError):
            await service.push("1001", update_type="images", access_token="tok")
        with pytest.raises(ValueError):
            await service.push("1001", price=0, access_token="tok")

    @pytest.mark.asyncio
    async def test_unknown_item(self, test_session):
        client = _mock_client()

        assert await ListingUpdateService(test_session, client).push("404", price=100, access_token="tok") is None
        client.update_price.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_uses_stored_credential(self, test_session):
        _seed(test_session, custom_price=1290)
        now = datetime.now(timezone.utc)
        CredentialStore(test_session).put(SHOP_ID, "stored-token", "ref", now + timedelta(hours=1), now + timedelta(days=10))
        client = _mock_client()

        await ListingUpdateService(test_session, client).push("1001", update_type="price")

        client.update_price.assert_awaited_once_with(SHOP_ID, "stored-token", "1001", 1290.0)

    @pytest.mark.asyncio
    async def test_missing_credential(self, test_session):
        _seed(test_session, custom_price=1290)
        client = _mock_client()

        with pytest.raises(CredentialNotFoundError):
            await ListingUpdateService(test_session, client).push("1001", update_type="price")
        client.update_price.assert_not_awaited()
