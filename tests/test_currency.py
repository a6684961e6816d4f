"""
Test suite for currency module

Tests rate table defaults, conversion and rate updates.
All monetary calculations must use Decimal precision.
"""

import pytest
from decimal import Decimal

from minibank.currency import Currency, RateTable, to_decimal
from minibank.errors import ValidationError
from minibank.persistence import RecordStore
from minibank.storage import InMemoryStorage


DEFAULT_RATES = (Decimal("2.60"), Decimal("2.45"), Decimal("9.75"))


@pytest.fixture
def record_store():
    return RecordStore(InMemoryStorage())


@pytest.fixture
def rates(record_store):
    table = RateTable(record_store, DEFAULT_RATES)
    table.load()
    return table


class TestToDecimal:
    """Test input conversion"""

    def test_strings_and_numbers(self):
        assert to_decimal("10.50") == Decimal("10.50")
        assert to_decimal(" 7 ") == Decimal("7")
        assert to_decimal(3) == Decimal("3")
        assert to_decimal(0.1) == Decimal("0.1")  # via str, not binary float

    @pytest.mark.parametrize("value", ["abc", "", "NaN", "Infinity"])
    def test_rejects_non_numeric(self, value):
        with pytest.raises(ValidationError):
            to_decimal(value)


class TestRateTable:
    """Test conversion with the rate table"""

    def test_defaults_used_without_file(self, rates):
        assert rates.rate(Currency.USD) == Decimal("2.60")
        assert rates.rate(Currency.EUR) == Decimal("2.45")
        assert rates.rate(Currency.SAR) == Decimal("9.75")

    def test_convert(self, rates):
        assert rates.convert("100", Currency.USD) == Decimal("260.00")
        assert rates.convert("1.5", Currency.SAR) == Decimal("14.625")

    def test_convert_rounded_half_up(self, rates):
        assert rates.convert_rounded("1.5", Currency.SAR) == Decimal("14.63")
        assert rates.convert_rounded("0.001", Currency.USD) == Decimal("0.00")

    def test_set_rates_persists(self, record_store, rates):
        rates.set_rates("2.7", "2.5", "10")

        reloaded = RateTable(record_store, DEFAULT_RATES)
        reloaded.load()
        assert reloaded.rates() == {
            Currency.USD: Decimal("2.7"),
            Currency.EUR: Decimal("2.5"),
            Currency.SAR: Decimal("10"),
        }

    @pytest.mark.parametrize("bad", ["0", "-1", "x"])
    def test_invalid_rates_leave_table_unchanged(self, rates, bad):
        with pytest.raises(ValidationError):
            rates.set_rates("2.7", bad, "10")
        assert rates.rate(Currency.USD) == Decimal("2.60")
