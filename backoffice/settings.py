from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "sqlite:///./backoffice.db"

    # 파트너(연동사) 자격증명 - 서명 생성에만 사용
    shopee_partner_id: str = ""
    shopee_partner_key: str = ""
    shopee_api_base_url: str = "https://partner.shopeemobile.com"
    shopee_redirect_url: str = "http://localhost:8000/api/tokens/callback"
    shopee_default_region: str = "TW"

    shopee_http_timeout: float = 30.0
    shopee_retry_count: int = 3  # tenacity 재시도 횟수 (일시 오류만)
    shopee_retry_wait_min: float = 1.0
    shopee_retry_wait_max: float = 20.0

    # 카탈로그 동기화
    sync_page_size: int = 50
    sync_max_pages: int = 200  # 페이지 상한 (업스트림 오동작 대비)
    sync_max_duration_seconds: float = 600.0
    sync_item_statuses: list[str] = ["NORMAL", "UNLIST"]
    sync_order_lookback_days: int = 15  # get_order_list 조회 범위 (최대 15일)

    refresh_token_ttl_days: int = 30

    log_level: str = "INFO"

    @field_validator("database_url")
    @classmethod
    def validate_db_url(cls, v: str) -> str:
        if not v.startswith(("postgresql", "sqlite")):
            raise ValueError("DB URL은 'postgresql' 또는 'sqlite'로 시작해야 합니다.")
        return v

    @field_validator("shopee_api_base_url", "shopee_redirect_url")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL은 'http://' 또는 'https://'로 시작해야 합니다.")
        return v

    @field_validator("shopee_http_timeout", "sync_max_duration_seconds")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("시간 값은 0보다 커야 합니다.")
        return v

    @field_validator("shopee_retry_wait_min", "shopee_retry_wait_max")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("대기 시간은 0 이상이어야 합니다.")
        return v

    @field_validator("shopee_retry_count")
    @classmethod
    def validate_retry_count(cls, v: int) -> int:
        if not 1 <= v <= 10:
            raise ValueError("retry_count는 1에서 10 사이여야 합니다.")
        return v

    @field_validator("sync_page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        if not 1 <= v <= 100:
            raise ValueError("sync_page_size는 1에서 100 사이여야 합니다.")
        return v

    @field_validator("sync_order_lookback_days")
    @classmethod
    def validate_order_lookback(cls, v: int) -> int:
        if not 1 <= v <= 15:
            raise ValueError("sync_order_lookback_days는 1에서 15 사이여야 합니다.")
        return v

    @field_validator("sync_max_pages", "refresh_token_ttl_days")
    @classmethod
    def validate_at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("값은 1 이상이어야 합니다.")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=False)


settings = Settings()
