import argparse
import asyncio
import json
import logging
import sys

from backoffice.db import engine, session_factory
from backoffice.models import Base
from backoffice.services.catalog_sync import CatalogSyncEngine
from backoffice.services.exceptions import MarketplaceError
from backoffice.services.listing_update import ListingUpdateService
from backoffice.services.order_sync import OrderSyncEngine
from backoffice.services.pricing.engine import recommend_price
from backoffice.services.pricing.fee_settings import FeeSettingsRepository
from backoffice.services.token_service import TokenLifecycleManager
from backoffice.settings import settings
from backoffice.shopee_client import ShopeeClient

# 로그 설정
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger("backoffice.cli")


def run_init_db(args) -> None:
    Base.metadata.create_all(bind=engine)
    with session_factory() as session:
        created = FeeSettingsRepository(session).ensure_defaults()
    logger.info(f"[CLI] 테이블 생성 완료, 기본 지역 설정 {created}건")


async def _sync(shop_id: int, access_token: str | None) -> dict:
    async with ShopeeClient() as client:
        with session_factory() as session:
            result = await CatalogSyncEngine(session, client).run_sync(shop_id, access_token=access_token)
    return result.to_dict()


async def _sync_orders(shop_id: int, access_token: str | None, order_status: str | None) -> dict:
    async with ShopeeClient() as client:
        with session_factory() as session:
            result = await OrderSyncEngine(session, client).run_sync(
                shop_id, access_token=access_token, order_status=order_status
            )
    return result.to_dict()


async def _push_price(item_id: str, price: float | None) -> dict | None:
    async with ShopeeClient() as client:
        with session_factory() as session:
            result = await ListingUpdateService(session, client).push(item_id, update_type="price", price=price)
    return result.to_dict() if result else None


async def _refresh(shop_id: int) -> dict:
    async with ShopeeClient() as client:
        with session_factory() as session:
            credential = await TokenLifecycleManager(session, client).refresh(shop_id)
            return {
                "shop_id": credential.shop_id,
                "access_token_expires_at": credential.access_token_expires_at.isoformat(),
            }


def run_sync_command(args) -> None:
    logger.info(f"[CLI] Starting product sync shop={args.shop_id}")
    print(json.dumps(asyncio.run(_sync(args.shop_id, args.access_token)), ensure_ascii=False))


def run_sync_orders_command(args) -> None:
    logger.info(f"[CLI] Starting order sync shop={args.shop_id}")
    print(json.dumps(asyncio.run(_sync_orders(args.shop_id, args.access_token, args.order_status)), ensure_ascii=False))


def run_push_price_command(args) -> None:
    logger.info(f"[CLI] Pushing price item={args.item_id}")
    print(json.dumps(asyncio.run(_push_price(args.item_id, args.price)), ensure_ascii=False))


def run_refresh_command(args) -> None:
    logger.info(f"[CLI] Refreshing token shop={args.shop_id}")
    print(json.dumps(asyncio.run(_refresh(args.shop_id)), ensure_ascii=False))


def run_recommend_command(args) -> None:
    with session_factory() as session:
        fee_config = FeeSettingsRepository(session).get(args.region)
    result = recommend_price(args.cost, fee_config, args.margin)
    print(json.dumps(result.to_dict() if result else None, ensure_ascii=False))


def main():
    parser = argparse.ArgumentParser(description="Marketplace Back-office CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init-db", help="Create tables and seed default regions")

    sync_parser = subparsers.add_parser("sync", help="Run full product sync for a shop")
    sync_parser.add_argument("--shop-id", type=int, required=True)
    sync_parser.add_argument("--access-token", default=None)

    orders_parser = subparsers.add_parser("sync-orders", help="Sync recent orders into order costs")
    orders_parser.add_argument("--shop-id", type=int, required=True)
    orders_parser.add_argument("--access-token", default=None)
    orders_parser.add_argument("--order-status", default=None)

    push_parser = subparsers.add_parser("push-price", help="Push a price (default: custom_price) to Shopee")
    push_parser.add_argument("--item-id", required=True)
    push_parser.add_argument("--price", type=float, default=None)

    refresh_parser = subparsers.add_parser("refresh-token", help="Refresh the shop access token")
    refresh_parser.add_argument("--shop-id", type=int, required=True)

    recommend_parser = subparsers.add_parser("recommend", help="Recommend a selling price")
    recommend_parser.add_argument("--cost", type=float, required=True)
    recommend_parser.add_argument("--region", default=settings.shopee_default_region)
    recommend_parser.add_argument("--margin", type=float, default=0.15)

    args = parser.parse_args()

    commands = {
        "init-db": run_init_db,
        "sync": run_sync_command,
        "sync-orders": run_sync_orders_command,
        "push-price": run_push_price_command,
        "refresh-token": run_refresh_command,
        "recommend": run_recommend_command,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return

    try:
        handler(args)
    except MarketplaceError as e:
        logger.error(f"[CLI] {e.error_code}: {e.message}")
        sys.exit(1)
    except ValueError as e:
        logger.error(f"[CLI] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
