"""
Operation Pricing

A price is one of three variants:
- FlatPrice: the same amount for every tool call
- PriceTable: amounts keyed by operation; a bare "tools/call" entry prices any tool without its
  own entry. No other method gets prefix matching.
- PriceFunction: a callable from operation to amount

Operations without a price are free.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, Mapping, Optional, Union

from social.graze.paymcp.server.operation import NON_MCP

TOOLS_CALL = "tools/call"

Amount = Union[Decimal, int, float, str]


def to_decimal(value: Amount) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() first so 0.03 becomes Decimal("0.03") rather than its binary expansion.
    return Decimal(str(value))


@dataclass(frozen=True)
class FlatPrice:
    amount: Decimal

    def __post_init__(self):
        object.__setattr__(self, "amount", to_decimal(self.amount))


@dataclass(frozen=True)
class PriceTable:
    prices: Mapping[str, Decimal] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(
            self, "prices", {op: to_decimal(v) for op, v in self.prices.items()}
        )


@dataclass(frozen=True)
class PriceFunction:
    fn: Callable[[str], Amount]


Price = Union[FlatPrice, PriceTable, PriceFunction]


def as_price(value: Any) -> Price:
    """Coerce a number, mapping or callable into a Price variant."""
    if isinstance(value, (FlatPrice, PriceTable, PriceFunction)):
        return value
    if isinstance(value, Mapping):
        return PriceTable(dict(value))
    if callable(value):
        return PriceFunction(value)
    return FlatPrice(to_decimal(value))


def is_tool_call(operation: str) -> bool:
    return operation == TOOLS_CALL or operation.startswith(f"{TOOLS_CALL}:")


def get_charge_for_operation(operation: str, price: Optional[Price]) -> Decimal:
    if price is None or operation == NON_MCP:
        return Decimal(0)

    if isinstance(price, FlatPrice):
        return price.amount if is_tool_call(operation) else Decimal(0)

    if isinstance(price, PriceFunction):
        return to_decimal(price.fn(operation))

    prices: Dict[str, Decimal] = dict(price.prices)
    if operation in prices:
        return prices[operation]
    if operation.startswith(f"{TOOLS_CALL}:") and TOOLS_CALL in prices:
        return prices[TOOLS_CALL]
    return Decimal(0)
