"""
가격 엔진 테스트.

기준 시나리오 (TW): 원가 3000 JPY, 목표 마진 15%
    fixed_cost = 3000 + 1350 + round(60 * 4.7) = 4632
    revenue_rate = 1 - 0.1631 - 0.15 = 0.6869
    권장가 = ceil(4632 / 0.6869) = 6744 JPY, 현지가 = ceil(4632 / (0.6869 * 4.7)) = 1435 TWD
"""

from decimal import Decimal

import pytest

from backoffice.services.exceptions import ComputationError
from backoffice.services.pricing.engine import (
    FeeConfig,
    calculate_profit,
    ceil_unit,
    fixed_cost,
    recommend_by_region,
    recommend_price,
    round_unit,
)
from backoffice.services.pricing.fee_settings import DEFAULT_REGIONS, FeeSettingsRepository


def _tw() -> FeeConfig:
    return FeeConfig(
        region="TW",
        currency="TWD",
        symbol="NT$",
        exchange_rate=4.7,
        commission_rate=0.1077,
        service_fee_rate=0.03,
        transaction_fee_rate=0.0254,
        shipping_cost_local=60,
        shipping_cost_intl=1350,
    )


@pytest.mark.unit
class TestRounding:

    def test_round_half_up(self):
        assert round_unit(Decimal("6744.5")) == Decimal("6745")
        assert round_unit(Decimal("154.55"), 1) == Decimal("154.6")

    def test_ceil(self):
        assert ceil_unit(Decimal("6743.0001")) == Decimal("6744")
        assert ceil_unit(Decimal("12.301"), 2) == Decimal("12.31")


@pytest.mark.unit
class TestRecommendPrice:

    def test_taiwan_scenario(self):
        rec = recommend_price(3000, _tw(), 0.15)

        assert rec.fixed_cost == Decimal("4632")
        assert rec.total_fee_rate == Decimal("0.1631")
        assert rec.revenue_rate == Decimal("0.6869")
        assert rec.recommended_price == Decimal("6744")
        assert rec.price_local == Decimal("1435")
        assert rec.currency == "TWD"

    def test_taiwan_breakdown(self):
        rec = recommend_price(3000, _tw(), 0.15)
        fees = rec.fee_breakdown

        assert fees.commission == Decimal("155")
        assert fees.service_fee == Decimal("43")
        assert fees.transaction_fee == Decimal("36")
        assert fees.total == Decimal("234")

        assert rec.breakdown.sales == Decimal("6745")
        assert rec.breakdown.fees_converted == Decimal("1100")
        assert rec.profit == Decimal("1013")
        assert rec.breakdown.margin >= Decimal("0.15")

    def test_to_dict_keys(self):
        data = recommend_price(3000, _tw(), 0.15).to_dict()

        assert data["recommendedPrice"] == 6744
        assert data["priceLocal"] == 1435
        assert data["feeBreakdown"]["total"] == 234
        assert data["profit"] == 1013

    def test_monotonic_in_cost(self):
        prices = [recommend_price(cost, _tw(), 0.15).recommended_price for cost in (1000, 2000, 3000, 3001, 5000)]
        assert prices == sorted(prices)

    def test_monotonic_in_margin(self):
        prices = [recommend_price(3000, _tw(), margin).recommended_price for margin in (0, 0.1, 0.15, 0.3)]
        assert prices == sorted(prices)

    def test_zero_cost_returns_none(self):
        assert recommend_price(0, _tw(), 0.15) is None
        assert recommend_price(-10, _tw(), 0.15) is None

    def test_fee_plus_margin_over_100_percent_raises(self):
        with pytest.raises(ComputationError) as excinfo:
            recommend_price(3000, _tw(), 0.9)
        assert excinfo.value.error_code == "COMPUTATION"
        assert excinfo.value.context["region"] == "TW"

    def test_revenue_rate_exactly_zero_raises(self):
        config = FeeConfig(currency="TWD", exchange_rate=4.7, commission_rate=0.5)
        with pytest.raises(ComputationError):
            recommend_price(1000, config, 0.5)

    def test_invalid_exchange_rate(self):
        config = FeeConfig(currency="TWD", exchange_rate=0)
        with pytest.raises(ComputationError):
            recommend_price(1000, config, 0.1)

    def test_currency_decimals(self):
        config = FeeConfig(currency="MYR", exchange_rate=33.5, commission_rate=0.1, shipping_cost_intl=1000, decimals=2)
        rec = recommend_price(2000, config, 0.2)

        # 3000 / (0.7 * 33.5) = 127.9317... -> 올림
        assert rec.price_local == Decimal("127.94")
        assert rec.recommended_price == Decimal("4286")


@pytest.mark.unit
class TestCalculateProfit:

    def test_same_cost_basis_as_recommendation(self):
        config = _tw()
        profit = calculate_profit(3000, 1435, config)

        assert profit.fixed_cost == fixed_cost(3000, config) == Decimal("4632")
        assert profit.profit == Decimal("1013")

    def test_loss_is_negative(self):
        profit = calculate_profit(3000, 500, _tw())
        assert profit.profit < 0
        assert profit.margin < 0


@pytest.mark.unit
def test_recommend_by_region_isolates_failures():
    broken = FeeConfig(region="XX", currency="XXX", exchange_rate=1, commission_rate=0.95)
    results = recommend_by_region(3000, {"TW": _tw(), "XX": broken}, 0.15)

    assert results["TW"].recommended_price == Decimal("6744")
    assert isinstance(results["XX"], ComputationError)


@pytest.mark.integration
class TestFeeSettingsRepository:

    def test_ensure_defaults_is_idempotent(self, test_session):
        repo = FeeSettingsRepository(test_session)

        assert repo.ensure_defaults() == len(DEFAULT_REGIONS)
        assert repo.ensure_defaults() == 0
        assert repo.get("tw").currency == "TWD"

    def test_missing_region(self, test_session):
        with pytest.raises(ComputationError):
            FeeSettingsRepository(test_session).get("SG")

    def test_update_changes_subsequent_calculation(self, test_session):
        repo = FeeSettingsRepository(test_session)
        repo.ensure_defaults()
        before = recommend_price(3000, repo.get("TW"), 0.15)

        repo.update("TW", commission_rate=0.2)
        after = recommend_price(3000, repo.get("TW"), 0.15)

        assert after.recommended_price > before.recommended_price

    def test_update_rejects_invalid_values(self, test_session):
        repo = FeeSettingsRepository(test_session)
        repo.ensure_defaults()

        with pytest.raises(ComputationError):
            repo.update("TW", exchange_rate=0)
        assert repo.get("TW").exchange_rate == 4.7

        with pytest.raises(ValueError):
            repo.update("TW", vat_rate=0.05)

    def test_create_new_region(self, test_session):
        repo = FeeSettingsRepository(test_session)

        with pytest.raises(ValueError):
            repo.update("MY", commission_rate=0.1)

        row = repo.update("my", currency="MYR", exchange_rate=33.5, decimals=2)
        assert row.region == "MY"
        assert set(repo.all_configs()) == {"MY"}
