"""
Unit tests for social.graze.paymcp.server.charge
"""

from decimal import Decimal

import pytest

from social.graze.paymcp.server.charge import (
    FlatPrice,
    PriceFunction,
    PriceTable,
    as_price,
    get_charge_for_operation,
    to_decimal,
)
from social.graze.paymcp.server.operation import NON_MCP


class TestToDecimal:
    """Test amount coercion."""

    def test_float_keeps_decimal_digits(self):
        """Floats convert through their shortest repr."""
        assert to_decimal(0.03) == Decimal("0.03")

    def test_passthrough(self):
        """Decimals are returned as is."""
        amount = Decimal("1.5")
        assert to_decimal(amount) is amount

    def test_strings_and_ints(self):
        assert to_decimal("0.01") == Decimal("0.01")
        assert to_decimal(2) == Decimal(2)


class TestFlatPrice:
    """Test flat pricing."""

    def test_tool_calls_are_charged(self):
        """Every tool call costs the flat amount."""
        price = FlatPrice(Decimal("0.01"))
        assert get_charge_for_operation("tools/call:add", price) == Decimal("0.01")
        assert get_charge_for_operation("tools/call", price) == Decimal("0.01")

    def test_other_methods_are_free(self):
        """Non tool methods are not charged."""
        price = FlatPrice(Decimal("0.01"))
        assert get_charge_for_operation("tools/list", price) == 0
        assert get_charge_for_operation("initialize", price) == 0
        assert get_charge_for_operation("prompts/get:summary", price) == 0

    def test_amount_coerced(self):
        assert FlatPrice(0.01).amount == Decimal("0.01")


class TestPriceTable:
    """Test table pricing precedence."""

    @pytest.fixture
    def price(self):
        return PriceTable(
            {"tools/call": "0.01", "tools/call:expensive": "0.5", "prompts/get": "0.02"}
        )

    def test_exact_entry_wins(self, price):
        """A tool's own entry overrides the tools/call default."""
        assert get_charge_for_operation("tools/call:expensive", price) == Decimal("0.5")

    def test_tools_call_default(self, price):
        """Tools without an entry use the bare tools/call price."""
        assert get_charge_for_operation("tools/call:add", price) == Decimal("0.01")

    def test_no_prefix_matching_for_other_methods(self, price):
        """Only tools/call falls back to its bare entry."""
        assert get_charge_for_operation("prompts/get", price) == Decimal("0.02")
        assert get_charge_for_operation("prompts/get:summary", price) == 0

    def test_unlisted_operation_is_free(self, price):
        assert get_charge_for_operation("resources/read", price) == 0

    def test_float_table(self):
        """Float amounts in a plain mapping resolve exactly."""
        price = as_price({"tools/call": 0.02, "tools/call:my_tool": 0.03})
        assert get_charge_for_operation("tools/call:my_tool", price) == Decimal("0.03")
        assert get_charge_for_operation("tools/call:anything", as_price({"tools/call": 0.01})) == Decimal("0.01")
        assert get_charge_for_operation("resources/read:something", as_price({"resources/read": 0.05})) == 0

    def test_without_tools_call_default(self):
        """Unlisted tools are free when the table has no tools/call entry."""
        price = PriceTable({"tools/call:add": 1})
        assert get_charge_for_operation("tools/call:other", price) == 0
        assert get_charge_for_operation("tools/call:add", price) == Decimal(1)


class TestPriceFunction:
    """Test computed prices."""

    def test_called_with_operation(self):
        """The function receives the operation and its result is coerced."""
        seen = []

        def price_of(operation):
            seen.append(operation)
            return 0.25

        amount = get_charge_for_operation("tools/call:add", PriceFunction(price_of))
        assert amount == Decimal("0.25")
        assert seen == ["tools/call:add"]

    def test_non_mcp_never_priced(self):
        """Non MCP traffic is free without consulting the function."""
        calls = []
        price = PriceFunction(lambda operation: calls.append(operation) or 1)
        assert get_charge_for_operation(NON_MCP, price) == 0
        assert calls == []


class TestAsPrice:
    """Test price coercion."""

    def test_number_is_flat(self):
        assert as_price(0.01) == FlatPrice(Decimal("0.01"))

    def test_mapping_is_table(self):
        price = as_price({"tools/call": 0.01})
        assert isinstance(price, PriceTable)
        assert price.prices == {"tools/call": Decimal("0.01")}

    def test_callable_is_function(self):
        assert isinstance(as_price(lambda operation: 0), PriceFunction)

    def test_variants_unchanged(self):
        price = FlatPrice(Decimal(1))
        assert as_price(price) is price

    def test_no_price_is_free(self):
        """Without a price nothing is charged."""
        assert get_charge_for_operation("tools/call:add", None) == 0
