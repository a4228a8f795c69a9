"""Decimal arithmetic utilities for token units and quote amounts.

All prices, amounts, units and balances are Decimal. No float.
The ledger works in 18-decimal base units, so every quantity the engine
hands to it is quantized to 18 places first.
"""

from decimal import ROUND_DOWN, ROUND_UP, Context, Decimal

UNIT_QUANTUM = Decimal("1e-18")
ZERO = Decimal("0")

# uint256 holds 78 digits; the default 28-digit context cannot carry 18 places past 1e10.
_LEDGER_CONTEXT = Context(prec=78)


def quantize_units(value: Decimal) -> Decimal:
    """Round a token quantity down to the ledger quantum (never over-deliver)."""
    return value.quantize(UNIT_QUANTUM, rounding=ROUND_DOWN, context=_LEDGER_CONTEXT)


def quantize_cost(value: Decimal) -> Decimal:
    """Round a quote cost up to the ledger quantum (platform never under-charges)."""
    return value.quantize(UNIT_QUANTUM, rounding=ROUND_UP, context=_LEDGER_CONTEXT)


def validate_positive(name: str, value: Decimal) -> None:
    """Raise ValueError unless value is a finite Decimal greater than zero."""
    if not value.is_finite() or value <= ZERO:
        raise ValueError(f"{name} must be positive, got {value}")


def to_display(value: Decimal, places: int = 4) -> str:
    """Format for logs: Decimal('12.5') -> '12.5000', keeps sign, groups thousands."""
    quantum = Decimal(1).scaleb(-places)
    return f"{value.quantize(quantum, rounding=ROUND_DOWN):,}"


def cost_of(units: Decimal, price: Decimal) -> Decimal:
    """units * price, multiplied exactly, then rounded up to the quantum."""
    return quantize_cost(_LEDGER_CONTEXT.multiply(units, price))
