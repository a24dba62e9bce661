"""
Marketplace Core Exception Classes

동기화 / 토큰 / 가격 계산 구조화 에러 정의
"""
from typing import Any, Dict, Optional


class MarketplaceError(Exception):
    """
    Base exception for all marketplace core errors

    Attributes:
        message: 에러 메시지
        error_code: 에러 코드
        context: 추가 컨텍스트 정보
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """에러 정보를 딕셔너리로 변환"""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
        }


class SignatureInputError(MarketplaceError):
    """파트너 ID/키 누락. 호출 자체를 시도하면 안 된다."""

    def __init__(self, message: str = "partner_id 와 partner_key 가 설정되어 있어야 합니다.", **kwargs):
        super().__init__(message, error_code="SIGNATURE_INPUT", **kwargs)


class UpstreamAPIError(MarketplaceError):
    """
    마켓 API 가 error 코드/메시지를 반환한 경우

    Attributes:
        error: 마켓 에러 코드 (예: error_auth)
        request_id: 마켓 request_id
    """

    def __init__(
        self,
        message: str,
        error: Optional[str] = None,
        request_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.error = error
        self.request_id = request_id
        ctx = {"error": error, "request_id": request_id}
        ctx.update(context or {})
        super().__init__(message, error_code="UPSTREAM_API", context=ctx)


class TransientUpstreamError(UpstreamAPIError):
    """네트워크 오류 / 429 / 5xx / 비 JSON 응답. 재시도 대상."""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        self.status_code = status_code
        super().__init__(message, error="transient", **kwargs)
        self.error_code = "UPSTREAM_TRANSIENT"
        self.context["status_code"] = status_code


class TokenExpiredError(MarketplaceError):
    """액세스 토큰 만료. 매니저 내부에서 refresh 를 유발한다."""

    def __init__(self, shop_id: int):
        self.shop_id = shop_id
        super().__init__(f"Access token expired for shop {shop_id}", error_code="TOKEN_EXPIRED", context={"shop_id": shop_id})


class CredentialNotFoundError(MarketplaceError):
    """상점 자격 증명이 없음 (Unauthenticated)"""

    def __init__(self, shop_id: int):
        self.shop_id = shop_id
        super().__init__(f"No credential stored for shop {shop_id}", error_code="CREDENTIAL_NOT_FOUND", context={"shop_id": shop_id})


class RefreshFailureError(MarketplaceError):
    """
    토큰 갱신 실패. 저장된 자격 증명은 변경되지 않는다.
    """

    def __init__(self, shop_id: int, message: str, error: Optional[str] = None, request_id: Optional[str] = None):
        self.shop_id = shop_id
        self.error = error
        super().__init__(
            message,
            error_code="REFRESH_FAILURE",
            context={"shop_id": shop_id, "error": error, "request_id": request_id},
        )


class PersistenceError(MarketplaceError):
    """단일 상품 저장 실패 (격리되어 items_failed 로 집계)"""

    def __init__(self, item_id: str, message: str):
        self.item_id = item_id
        super().__init__(message, error_code="PERSISTENCE", context={"item_id": item_id})


class ComputationError(MarketplaceError):
    """가격 계산 불가 (revenue_rate <= 0 등). 절대 조용히 보정하지 않는다."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="COMPUTATION", **kwargs)


class SyncInProgressError(MarketplaceError):
    """동일 상점/유형 동기화가 이미 실행 중"""

    def __init__(self, shop_id: int, sync_type: str):
        super().__init__(
            f"{sync_type} sync already running for shop {shop_id}",
            error_code="SYNC_IN_PROGRESS",
            context={"shop_id": shop_id, "sync_type": sync_type},
        )
