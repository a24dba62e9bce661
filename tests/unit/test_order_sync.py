"""
주문 동기화 테스트 (Fake Shopee 클라이언트 + 메모리 DB).
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from backoffice.models import SyncRun, SyncRunError
from backoffice.schemas.shopee import (
    OrderDetail,
    OrderDetailPayload,
    OrderDetailResponse,
    OrderListPage,
    OrderListResponse,
    OrderRef,
)
from backoffice.services.catalog_sync import PaginatedFetcher
from backoffice.services.exceptions import UpstreamAPIError
from backoffice.services.order_sync import OrderSyncEngine, map_order_status
from backoffice.services.pricing.order_profit import OrderCostRepository

SHOP_ID = 55501
NOW = datetime(2026, 3, 16, tzinfo=timezone.utc)


def _order(order_sn: str, **overrides) -> OrderDetail:
    data = {
        "order_sn": order_sn,
        "order_status": "COMPLETED",
        "currency": "TWD",
        "total_amount": 1435,
        "create_time": 1773500000,
    }
    data.update(overrides)
    return OrderDetail.model_validate(data)


class FakeOrderClient:
    """cursor = 다음 시작 인덱스 문자열"""

    def __init__(self, orders, list_error=None, drop_cursor=False):
        self.orders = {o.order_sn: o for o in orders}
        self.order = [o.order_sn for o in orders]
        self.list_error = list_error
        self.drop_cursor = drop_cursor
        self.list_calls = []
        self.detail_calls = []

    async def get_order_list(self, shop_id, access_token, time_from, time_to, cursor="", page_size=50, order_status=None):
        self.list_calls.append({"cursor": cursor, "time_from": time_from, "time_to": time_to, "order_status": order_status})
        if self.list_error:
            return OrderListResponse(error=self.list_error, message="list failed", request_id="r-orders")

        start = int(cursor or 0)
        sns = self.order[start:start + page_size]
        more = start + page_size < len(self.order)
        next_cursor = "" if self.drop_cursor or not more else str(start + page_size)
        return OrderListResponse(
            response=OrderListPage(
                order_list=[OrderRef(order_sn=sn) for sn in sns],
                more=more,
                next_cursor=next_cursor,
            )
        )

    async def get_order_detail(self, shop_id, access_token, order_sns):
        self.detail_calls.append(list(order_sns))
        return OrderDetailResponse(response=OrderDetailPayload(order_list=[self.orders[sn] for sn in order_sns]))


def _engine(session, client, **kwargs):
    return OrderSyncEngine(session, client, clock=lambda: NOW, **kwargs)


@pytest.mark.unit
def test_map_order_status():
    assert map_order_status("READY_TO_SHIP") == "processing"
    assert map_order_status("COMPLETED") == "delivered"
    assert map_order_status("IN_CANCEL") == "cancelled"
    assert map_order_status("SOMETHING_NEW") == "pending"
    assert map_order_status(None) == "pending"


@pytest.mark.unit
class TestOrderFetch:

    @pytest.mark.asyncio
    async def test_cursor_pagination(self):
        client = FakeOrderClient([_order(f"A{i}") for i in range(5)])
        fetcher = PaginatedFetcher(
            list_page=lambda cursor: client.get_order_list(SHOP_ID, "tok", 0, 1, cursor=cursor, page_size=2),
            fetch_details=lambda sns: client.get_order_detail(SHOP_ID, "tok", sns),
            page_size=2,
            start_cursor="",
            list_stage="get_order_list",
            detail_stage="get_order_detail",
        )

        result = await fetcher.fetch_all()

        assert [c["cursor"] for c in client.list_calls] == ["", "2", "4"]
        assert [o.order_sn for o in result.items] == ["A0", "A1", "A2", "A3", "A4"]
        assert result.truncated is False

    @pytest.mark.asyncio
    async def test_missing_next_cursor_truncates(self):
        client = FakeOrderClient([_order(f"A{i}") for i in range(5)], drop_cursor=True)
        fetcher = PaginatedFetcher(
            list_page=lambda cursor: client.get_order_list(SHOP_ID, "tok", 0, 1, cursor=cursor, page_size=2),
            fetch_details=lambda sns: client.get_order_detail(SHOP_ID, "tok", sns),
            page_size=2,
            start_cursor="",
        )

        result = await fetcher.fetch_all()

        assert result.list_calls == 1
        assert result.truncated is True
        assert len(result.items) == 2

    def test_time_window(self, test_session):
        engine = _engine(test_session, FakeOrderClient([]), lookback_days=15)
        time_from, time_to = engine.time_window()

        assert time_to == int(NOW.timestamp())
        assert time_to - time_from == 15 * 24 * 60 * 60


@pytest.mark.integration
class TestOrderSyncEngine:

    @pytest.mark.asyncio
    async def test_sync_writes_order_costs(self, test_session):
        client = FakeOrderClient([_order("A1"), _order("A2", total_amount=990, order_status="READY_TO_SHIP")])

        result = await _engine(test_session, client, page_size=1).run_sync(SHOP_ID, access_token="tok")

        assert result.to_dict()["synced"] == 2
        assert result.status == "success"
        assert client.list_calls[0]["time_to"] == int(NOW.timestamp())
        assert client.list_calls[0]["order_status"] is None

        rows = OrderCostRepository(test_session).list_for_shop(SHOP_ID)
        assert [(r.order_id, r.order_sn, r.sales_local, r.order_status) for r in rows] == [
            ("A1", "A1", 1435, "COMPLETED"),
            ("A2", "A2", 990, "READY_TO_SHIP"),
        ]
        assert rows[0].product_cost == 0
        assert rows[0].currency == "TWD"

        run = test_session.scalars(select(SyncRun)).one()
        assert run.sync_type == "orders"
        assert run.status == "success"
        assert run.api_calls == 4
        assert run.meta["order_status"] == "ALL"

    @pytest.mark.asyncio
    async def test_manual_costs_survive_resync(self, test_session):
        repo = OrderCostRepository(test_session)
        repo.upsert(SHOP_ID, "A1", product_cost=3000, other_cost=120, commission_local=150, notes="yamato")

        client = FakeOrderClient([_order("A1", total_amount=1500, order_status="SHIPPED")])
        await _engine(test_session, client).run_sync(SHOP_ID, access_token="tok")

        row = repo.get(SHOP_ID, "A1")
        assert row.sales_local == 1500
        assert row.order_status == "SHIPPED"
        assert row.product_cost == 3000
        assert row.other_cost == 120
        assert row.commission_local == 150
        assert row.notes == "yamato"
        assert len(repo.list_for_shop(SHOP_ID)) == 1

    @pytest.mark.asyncio
    async def test_status_filter_passed_through(self, test_session):
        client = FakeOrderClient([_order("A1")])

        await _engine(test_session, client).run_sync(SHOP_ID, access_token="tok", order_status="READY_TO_SHIP")

        assert client.list_calls[0]["order_status"] == "READY_TO_SHIP"

    @pytest.mark.asyncio
    async def test_list_error_records_failure(self, test_session):
        client = FakeOrderClient([_order("A1")], list_error="error_auth")

        with pytest.raises(UpstreamAPIError) as excinfo:
            await _engine(test_session, client).run_sync(SHOP_ID, access_token="tok")

        assert excinfo.value.context["stage"] == "get_order_list"
        assert OrderCostRepository(test_session).list_for_shop(SHOP_ID) == []
        run = test_session.scalars(select(SyncRun)).one()
        assert run.status == "failure"
        errors = list(test_session.scalars(select(SyncRunError)).all())
        assert [e.entity_type for e in errors] == ["system"]

    @pytest.mark.asyncio
    async def test_single_order_failure_is_isolated(self, test_session):
        class FlakyOrderRepository(OrderCostRepository):
            def record_remote_order(self, shop_id, order):
                if order.order_sn == "A2":
                    raise ValueError("bad order")
                return super().record_remote_order(shop_id, order)

        client = FakeOrderClient([_order("A1"), _order("A2"), _order("A3")])
        engine = _engine(test_session, client, repository=FlakyOrderRepository(test_session))

        result = await engine.run_sync(SHOP_ID, access_token="tok")

        assert result.synced == 2
        assert result.failed == 1
        assert result.status == "partial"
        errors = list(test_session.scalars(select(SyncRunError)).all())
        assert [(e.entity_type, e.entity_id, e.error_code) for e in errors] == [("order", "A2", "ValueError")]

    @pytest.mark.asyncio
    async def test_uses_token_manager_without_explicit_token(self, test_session):
        class StubCredential:
            access_token = "managed-token"

        class StubTokenManager:
            async def get_valid_credential(self, shop_id):
                return StubCredential()

        seen = []
        client = FakeOrderClient([_order("A1")])
        original = client.get_order_list

        async def recording_list(shop_id, access_token, *args, **kwargs):
            seen.append(access_token)
            return await original(shop_id, access_token, *args, **kwargs)

        client.get_order_list = recording_list

        await _engine(test_session, client, token_manager=StubTokenManager()).run_sync(SHOP_ID)

        assert seen == ["managed-token"]
