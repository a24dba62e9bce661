from __future__ import annotations

import asyncio
import enum
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from backoffice.db import dialect_insert
from backoffice.models import Shop, ShopToken
from backoffice.schemas.shopee import TokenResponse
from backoffice.services.exceptions import (
    CredentialNotFoundError,
    RefreshFailureError,
    TokenExpiredError,
    TransientUpstreamError,
    UpstreamAPIError,
)
from backoffice.settings import settings
from backoffice.shopee_client import ShopeeClient, mask_secret

logger = logging.getLogger(__name__)

# 상점별 refresh single-flight. 대기자가 없어지면 항목을 지운다.
_refresh_locks: dict[int, asyncio.Lock] = {}
_refresh_lock_users: dict[int, int] = {}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(dt: datetime | None) -> datetime | None:
    # SQLite 는 tzinfo 를 보존하지 않는다
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class CredentialState(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHORIZED = "authorized"
    EXPIRED = "expired"
    REFRESH_EXPIRED = "refresh_expired"


def is_valid(credential: ShopToken | None, now: datetime | None = None) -> bool:
    """access_token 이 있고 now < access_token_expires_at 이면 사용 가능"""
    if credential is None or not credential.access_token:
        return False
    now = now or _utcnow()
    return now < _as_utc(credential.access_token_expires_at)


def credential_status(credential: ShopToken | None, now: datetime | None = None) -> CredentialState:
    now = now or _utcnow()
    if credential is None or not credential.access_token:
        return CredentialState.UNAUTHENTICATED
    if is_valid(credential, now):
        return CredentialState.AUTHORIZED
    if now >= _as_utc(credential.refresh_token_expires_at):
        return CredentialState.REFRESH_EXPIRED
    return CredentialState.EXPIRED


class CredentialStore:
    """
    상점 토큰 저장소.

    tokens 가 원본, shops 는 운영 메타데이터 미러.
    미러 쓰기 실패는 경고 로그만 남기고 전파하지 않는다.
    """

    def __init__(self, session: Session):
        self.session = session

    def get(self, shop_id: int) -> ShopToken | None:
        stmt = select(ShopToken).where(ShopToken.shop_id == int(shop_id)).execution_options(populate_existing=True)
        return self.session.scalars(stmt).one_or_none()

    def get_latest_for_region(self, region: str) -> ShopToken | None:
        stmt = (
            select(ShopToken)
            .where(ShopToken.region == region)
            .order_by(ShopToken.updated_at.desc())
            .limit(1)
        )
        return self.session.scalars(stmt).first()

    def list_all(self) -> list[ShopToken]:
        return list(self.session.scalars(select(ShopToken).order_by(ShopToken.updated_at.desc())).all())

    def put(
        self,
        shop_id: int,
        access_token: str,
        refresh_token: str,
        access_token_expires_at: datetime,
        refresh_token_expires_at: datetime,
        region: str | None = None,
        shop_name: str | None = None,
    ) -> ShopToken:
        region = region or settings.shopee_default_region
        now = _utcnow()
        values = {
            "shop_id": int(shop_id),
            "access_token": access_token,
            "refresh_token": refresh_token,
            "access_token_expires_at": access_token_expires_at,
            "refresh_token_expires_at": refresh_token_expires_at,
            "region": region,
            "updated_at": now,
        }
        if shop_name is not None:
            values["shop_name"] = shop_name

        stmt = dialect_insert(self.session, ShopToken).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["shop_id"],
            set_={k: stmt.excluded[k] for k in values if k != "shop_id"},
        )
        self.session.execute(stmt)
        self.session.commit()

        self._mirror_shop(int(shop_id), access_token, refresh_token, access_token_expires_at, region, shop_name)

        return self.get(shop_id)

    def _mirror_shop(
        self,
        shop_id: int,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
        region: str,
        shop_name: str | None,
    ) -> None:
        try:
            values = {
                "shop_id": shop_id,
                "access_token": access_token,
                "refresh_token": refresh_token,
                "token_expires_at": expires_at,
                "region": region,
                "is_active": True,
                "updated_at": _utcnow(),
            }
            if shop_name is not None:
                values["shop_name"] = shop_name
            stmt = dialect_insert(self.session, Shop).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["shop_id"],
                set_={k: stmt.excluded[k] for k in values if k != "shop_id"},
            )
            self.session.execute(stmt)
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.warning(f"[TOKEN] shops 미러 기록 실패 (shop={shop_id}): {e}")

    def delete(self, shop_id: int) -> bool:
        result = self.session.execute(delete(ShopToken).where(ShopToken.shop_id == int(shop_id)))
        shop = self.session.get(Shop, int(shop_id))
        if shop is not None:
            shop.is_active = False
            shop.access_token = None
            shop.refresh_token = None
        self.session.commit()
        return (result.rowcount or 0) > 0


class TokenLifecycleManager:
    """
    토큰 수명 주기 관리.

    Unauthenticated -> Authorized -> Expired -> (refresh) -> Authorized
    refresh 실패 시 저장 상태는 그대로 두고 RefreshFailureError 를 올린다.
    """

    def __init__(
        self,
        session: Session,
        client: ShopeeClient,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.session = session
        self.client = client
        self.store = CredentialStore(session)
        self._clock = clock

    def _expiry_pair(self, expire_in: int) -> tuple[datetime, datetime]:
        now = self._clock()
        return (
            now + timedelta(seconds=int(expire_in)),
            now + timedelta(days=settings.refresh_token_ttl_days),
        )

    async def exchange_code(self, code: str, shop_id: int, region: str | None = None) -> ShopToken:
        """인가 코드 -> 최초 자격 증명 저장"""
        resp: TokenResponse = await self.client.get_token(code, shop_id)
        if resp.is_error or not resp.access_token:
            logger.error(f"[TOKEN] 토큰 발급 실패 shop={shop_id}: {resp.error} {resp.message}")
            raise UpstreamAPIError(
                resp.message or "token issue failed",
                error=resp.error or "empty_token",
                request_id=resp.request_id,
                context={"shop_id": shop_id},
            )

        access_exp, refresh_exp = self._expiry_pair(resp.expire_in)
        credential = self.store.put(
            shop_id,
            resp.access_token,
            resp.refresh_token,
            access_exp,
            refresh_exp,
            region=region,
        )
        logger.info(f"[TOKEN] 인가 완료 shop={shop_id} access_token={mask_secret(resp.access_token)} expires_at={access_exp.isoformat()}")
        return credential

    async def refresh(self, shop_id: int) -> ShopToken:
        credential = self.store.get(shop_id)
        if credential is None:
            raise CredentialNotFoundError(shop_id)

        now = self._clock()
        if now >= _as_utc(credential.refresh_token_expires_at):
            logger.error(f"[TOKEN] refresh_token 만료 shop={shop_id}, 재인가 필요")
            raise RefreshFailureError(shop_id, "refresh_token 이 만료되었습니다. 상점 재인가가 필요합니다.", error="refresh_expired")

        try:
            resp = await self.client.refresh_access_token(credential.refresh_token, shop_id)
        except TransientUpstreamError as e:
            logger.error(f"[TOKEN] 토큰 갱신 호출 실패 shop={shop_id}: {e.message}")
            raise RefreshFailureError(shop_id, e.message, error=e.error) from e

        if resp.is_error or not resp.access_token:
            logger.error(f"[TOKEN] 토큰 갱신 실패 shop={shop_id}: {resp.error} {resp.message}")
            raise RefreshFailureError(
                shop_id,
                resp.message or "token refresh failed",
                error=resp.error or "empty_token",
                request_id=resp.request_id,
            )

        access_exp, refresh_exp = self._expiry_pair(resp.expire_in)
        refreshed = self.store.put(
            shop_id,
            resp.access_token,
            # 응답에 새 refresh_token 이 없으면 기존 값을 유지
            resp.refresh_token or credential.refresh_token,
            access_exp,
            refresh_exp,
            region=credential.region,
        )
        logger.info(f"[TOKEN] 토큰 갱신 완료 shop={shop_id} expires_at={access_exp.isoformat()}")
        return refreshed

    def ensure_valid(self, shop_id: int) -> ShopToken:
        credential = self.store.get(shop_id)
        if credential is None:
            raise CredentialNotFoundError(shop_id)
        if not is_valid(credential, self._clock()):
            raise TokenExpiredError(shop_id)
        return credential

    async def get_valid_credential(self, shop_id: int) -> ShopToken:
        """유효한 자격 증명을 반환. 만료 시 상점 단위 single-flight 로 갱신한다."""
        try:
            return self.ensure_valid(shop_id)
        except TokenExpiredError:
            logger.info(f"[TOKEN] 액세스 토큰 만료, 갱신 시도 shop={shop_id}")

        key = int(shop_id)
        lock = _refresh_locks.setdefault(key, asyncio.Lock())
        _refresh_lock_users[key] = _refresh_lock_users.get(key, 0) + 1
        try:
            async with lock:
                # 대기 중 다른 요청이 이미 갱신했을 수 있음
                try:
                    return self.ensure_valid(shop_id)
                except TokenExpiredError:
                    return await self.refresh(shop_id)
        finally:
            _refresh_lock_users[key] -= 1
            if _refresh_lock_users[key] == 0:
                del _refresh_lock_users[key]
                _refresh_locks.pop(key, None)
