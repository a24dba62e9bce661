from __future__ import annotations

import hashlib
import hmac
import time

from backoffice.services.exceptions import SignatureInputError


def sign(secret_key: str, canonical: str) -> str:
    """
    Shopee Open Platform v2 서명.

    HMAC-SHA256(key=partner_key, msg=canonical) 의 소문자 hex (64자).
    """
    return hmac.new(
        secret_key.encode("utf-8"),
        canonical.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def build_partner_base_string(partner_id: int | str, path: str, timestamp: int) -> str:
    """파트너 범위 호출(토큰 발급/갱신, 상점 인가): {partner_id}{path}{timestamp}"""
    return f"{partner_id}{path}{timestamp}"


def build_shop_base_string(
    partner_id: int | str,
    path: str,
    timestamp: int,
    access_token: str,
    shop_id: int | str,
) -> str:
    """상점 범위 호출: {partner_id}{path}{timestamp}{access_token}{shop_id}"""
    return f"{partner_id}{path}{timestamp}{access_token}{shop_id}"


class ShopeeSigner:
    """
    파트너 자격 증명을 보관하고 URL 쿼리용 공통 파라미터(partner_id, timestamp, sign)를 만든다.
    """

    def __init__(self, partner_id: int | str, partner_key: str) -> None:
        if not str(partner_id or "").strip() or not (partner_key or "").strip():
            raise SignatureInputError()
        self.partner_id = int(partner_id)
        self._partner_key = partner_key

    def partner_params(self, path: str, timestamp: int | None = None) -> dict[str, str | int]:
        ts = int(timestamp if timestamp is not None else time.time())
        base = build_partner_base_string(self.partner_id, path, ts)
        return {
            "partner_id": self.partner_id,
            "timestamp": ts,
            "sign": sign(self._partner_key, base),
        }

    def shop_params(
        self,
        path: str,
        access_token: str,
        shop_id: int,
        timestamp: int | None = None,
    ) -> dict[str, str | int]:
        if not access_token:
            raise SignatureInputError("상점 범위 호출에는 access_token 이 필요합니다.", context={"shop_id": shop_id})
        ts = int(timestamp if timestamp is not None else time.time())
        base = build_shop_base_string(self.partner_id, path, ts, access_token, shop_id)
        return {
            "partner_id": self.partner_id,
            "timestamp": ts,
            "access_token": access_token,
            "shop_id": shop_id,
            "sign": sign(self._partner_key, base),
        }
