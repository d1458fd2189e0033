"""Tests for rate table validation and the registry."""

from dataclasses import replace
from decimal import Decimal

import pytest

from cra_payroll.calculators.rate_tables import (
    CppParameters,
    EiParameters,
    MissingRateTableError,
    RateTable,
    RateTableError,
    RateTableRegistry,
    TaxBracket,
    round_half_up,
)
from cra_payroll.calculators.rates_seed import FEDERAL_2025, ONTARIO_2025
from cra_payroll.calculators.types import Jurisdiction


def _provincial(brackets, bpa="10000", year=2025, jurisdiction=Jurisdiction.ON, **kwargs) -> RateTable:
    return RateTable(
        tax_year=year,
        jurisdiction=jurisdiction,
        basic_personal_amount=Decimal(bpa),
        brackets=tuple(brackets),
        **kwargs,
    )


class TestRoundHalfUp:
    """Tests for cent rounding."""

    @pytest.mark.parametrize(
        "amount,expected",
        [
            ("110.990384", "110.99"),
            ("55.495", "55.50"),
            ("0.005", "0.01"),
            ("0.0049", "0.00"),
            ("269.15", "269.15"),
        ],
    )
    def test_rounds_half_up_to_cents(self, amount, expected):
        assert round_half_up(Decimal(amount)) == Decimal(expected)


class TestRateTableValidation:
    """Malformed tables are rejected when constructed."""

    def test_seed_tables_load(self):
        federal = RateTable.from_payload(FEDERAL_2025)
        assert federal.jurisdiction == Jurisdiction.FEDERAL
        assert len(federal.brackets) == 5
        assert federal.brackets[-1].upper_bound is None

    def test_empty_brackets_rejected(self):
        with pytest.raises(RateTableError, match="at least one bracket"):
            _provincial([])

    def test_rate_out_of_range_rejected(self):
        with pytest.raises(RateTableError, match="out of range"):
            _provincial([TaxBracket(None, Decimal("1.5"))])

    def test_decreasing_rates_rejected(self):
        with pytest.raises(RateTableError, match="rate decreases"):
            _provincial([TaxBracket(Decimal("100"), Decimal("0.2")), TaxBracket(None, Decimal("0.1"))])

    def test_open_bracket_must_be_last(self):
        with pytest.raises(RateTableError, match="only the last bracket"):
            _provincial([TaxBracket(None, Decimal("0.1")), TaxBracket(Decimal("100"), Decimal("0.2"))])

    def test_last_bracket_must_be_open(self):
        with pytest.raises(RateTableError, match="must be open-ended"):
            _provincial([TaxBracket(Decimal("100"), Decimal("0.1"))])

    def test_bounds_must_ascend(self):
        with pytest.raises(RateTableError, match="not ascending"):
            _provincial(
                [
                    TaxBracket(Decimal("200"), Decimal("0.1")),
                    TaxBracket(Decimal("100"), Decimal("0.2")),
                    TaxBracket(None, Decimal("0.3")),
                ]
            )

    def test_federal_requires_cpp_and_ei(self):
        with pytest.raises(RateTableError, match="requires CPP and EI"):
            _provincial([TaxBracket(None, Decimal("0.15"))], jurisdiction=Jurisdiction.FEDERAL)

    def test_cpp_maximum_must_exceed_exemption(self):
        with pytest.raises(RateTableError, match="must exceed basic exemption"):
            _provincial(
                [TaxBracket(None, Decimal("0.15"))],
                jurisdiction=Jurisdiction.FEDERAL,
                cpp=CppParameters(Decimal("0.0595"), Decimal("3500"), Decimal("3000")),
                ei=EiParameters(Decimal("0.0164"), Decimal("65700")),
            )

    def test_malformed_payload_wrapped(self):
        payload = dict(ONTARIO_2025, basic_personal_amount="not-a-number")
        with pytest.raises(RateTableError, match="malformed payload"):
            RateTable.from_payload(payload)

    def test_unknown_jurisdiction_in_payload(self):
        payload = dict(ONTARIO_2025, jurisdiction="XX")
        with pytest.raises(RateTableError, match="bad header"):
            RateTable.from_payload(payload)

    def test_payload_round_trip(self):
        table = RateTable.from_payload(FEDERAL_2025)
        assert RateTable.from_payload(table.to_payload()) == table


class TestStatutoryMaximums:
    """Annual maximums derived from the federal table."""

    def test_2025_maximums(self, registry):
        federal = registry.resolve(Jurisdiction.FEDERAL, 2025)
        assert federal.cpp_max_pensionable == Decimal("67800")
        assert federal.cpp_max_contribution == Decimal("4034.10")
        assert federal.ei_max_premium == Decimal("1077.48")

    def test_2024_maximums(self, registry):
        federal = registry.resolve(Jurisdiction.FEDERAL, 2024)
        assert federal.cpp_max_contribution == Decimal("3867.50")
        assert federal.ei_max_premium == Decimal("1049.12")

    def test_provincial_table_has_no_cpp(self, registry):
        ontario = registry.resolve(Jurisdiction.ON, 2025)
        with pytest.raises(RateTableError, match="no CPP parameters"):
            ontario.cpp_max_contribution


class TestRateTableRegistry:
    """Tests for versioning and resolution."""

    def test_resolve_missing_raises(self, registry):
        with pytest.raises(MissingRateTableError) as exc_info:
            registry.resolve(Jurisdiction.QC, 2025)
        assert exc_info.value.jurisdiction == "QC"
        assert exc_info.value.tax_year == 2025

    def test_years_are_independent(self, registry):
        assert registry.has_active(Jurisdiction.ON, 2024)
        assert not registry.has_active(Jurisdiction.BC, 2024)
        assert registry.has_active(Jurisdiction.BC, 2025)

    def test_activating_new_version_deactivates_prior(self, caplog):
        first = RateTable.from_payload(ONTARIO_2025)
        second = replace(first, basic_personal_amount=Decimal("13000"))
        registry = RateTableRegistry.from_tables([first])

        with caplog.at_level("INFO", logger="cra_payroll.calculators.rate_tables"):
            registry.register(second)

        assert registry.resolve(Jurisdiction.ON, 2025).basic_personal_amount == Decimal("13000")
        versions = registry.versions(Jurisdiction.ON, 2025)
        assert len(versions) == 2
        assert [v.is_active for v in versions] == [False, True]
        assert "Deactivating prior rate table for ON/2025" in caplog.text

    def test_inactive_table_does_not_resolve(self):
        inactive = RateTable.from_payload(ONTARIO_2025, is_active=False)
        registry = RateTableRegistry.from_tables([inactive])
        assert not registry.has_active(Jurisdiction.ON, 2025)
        with pytest.raises(MissingRateTableError):
            registry.resolve(Jurisdiction.ON, 2025)

        registry.activate(inactive)
        assert registry.resolve(Jurisdiction.ON, 2025).is_active

    def test_active_tables_sorted(self, registry):
        keys = [(t.tax_year, t.jurisdiction.value) for t in registry.active_tables()]
        assert keys == sorted(keys)
        assert (2025, "FED") in keys
