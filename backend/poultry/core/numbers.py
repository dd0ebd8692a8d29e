"""Decimal helpers shared by the ledger and reconciliation services."""
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")

# Cached balances and reconciliation figures are compared with this tolerance
# to absorb rounding between stored 2-place values and recomputed sums.
TOLERANCE = Decimal("0.01")


def to_decimal(value) -> Decimal:
    """Accept Decimal, int, float or str; floats go through str to avoid binary noise."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
