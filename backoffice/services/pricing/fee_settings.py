import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.models import RegionSetting
from backoffice.services.exceptions import ComputationError
from backoffice.services.pricing.engine import FeeConfig

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({
    "currency",
    "currency_symbol",
    "decimals",
    "exchange_rate",
    "commission_rate",
    "service_fee_rate",
    "transaction_fee_rate",
    "shipping_cost_local",
    "shipping_cost_intl",
})

DEFAULT_REGIONS: dict[str, dict[str, Any]] = {
    "TW": {
        "currency": "TWD",
        "currency_symbol": "NT$",
        "decimals": 0,
        "exchange_rate": 4.7,
        "commission_rate": 0.1077,
        "service_fee_rate": 0.03,
        "transaction_fee_rate": 0.0254,
        "shipping_cost_local": 60,
        "shipping_cost_intl": 1350,
    },
}


def to_fee_config(row: RegionSetting) -> FeeConfig:
    return FeeConfig(
        region=row.region,
        currency=row.currency,
        symbol=row.currency_symbol or "",
        decimals=row.decimals or 0,
        exchange_rate=row.exchange_rate,
        commission_rate=row.commission_rate or 0.0,
        service_fee_rate=row.service_fee_rate or 0.0,
        transaction_fee_rate=row.transaction_fee_rate or 0.0,
        shipping_cost_local=row.shipping_cost_local or 0.0,
        shipping_cost_intl=row.shipping_cost_intl or 0.0,
    )


def region_to_dict(row: RegionSetting) -> dict[str, Any]:
    return {"region": row.region, **{name: getattr(row, name) for name in sorted(EDITABLE_FIELDS)}}


class FeeSettingsRepository:
    """
    지역별 FeeConfig 저장소 (region_settings).
    """

    def __init__(self, session: Session):
        self.session = session

    def get_row(self, region: str) -> RegionSetting | None:
        return self.session.get(RegionSetting, region.upper())

    def get(self, region: str) -> FeeConfig:
        row = self.get_row(region)
        if row is None:
            raise ComputationError(f"지역 설정이 없습니다: {region}", context={"region": region})
        return to_fee_config(row)

    def list_all(self) -> list[RegionSetting]:
        return list(self.session.scalars(select(RegionSetting).order_by(RegionSetting.region)).all())

    def all_configs(self) -> dict[str, FeeConfig]:
        return {row.region: to_fee_config(row) for row in self.list_all()}

    def update(self, region: str, **fields: Any) -> RegionSetting:
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"수정할 수 없는 필드입니다: {sorted(unknown)}")

        row = self.get_row(region)
        if row is None:
            if "currency" not in fields or "exchange_rate" not in fields:
                raise ValueError("새 지역에는 currency 와 exchange_rate 가 필요합니다.")
            row = RegionSetting(region=region.upper())
            self.session.add(row)

        for key, value in fields.items():
            setattr(row, key, value)

        # 저장 전에 값 검증
        try:
            to_fee_config(row).validate()
        except ComputationError:
            self.session.rollback()
            raise
        self.session.commit()
        logger.info(f"[PRICING] 지역 설정 갱신 region={row.region} fields={sorted(fields)}")
        return row

    def ensure_defaults(self) -> int:
        created = 0
        for region, values in DEFAULT_REGIONS.items():
            if self.get_row(region) is None:
                self.session.add(RegionSetting(region=region, **values))
                created += 1
        if created:
            self.session.commit()
            logger.info(f"[PRICING] 기본 지역 설정 {created}건 생성")
        return created
