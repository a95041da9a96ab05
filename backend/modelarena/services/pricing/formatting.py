"""Human-readable cost formatting"""
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional


def format_cost(cost: Optional[float]) -> str:
    """Format a USD cost with at least 2 and at most 4 decimals

    The 3rd and 4th decimals are shown only when non-zero:
    0.5512 -> $0.5512, 0.881 -> $0.881, 0.35 -> $0.35, 0.7 -> $0.70
    """
    if cost is None:
        return "N/A"

    formatted = str(Decimal(str(cost)).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP))
    integer, decimals = formatted.split(".")

    final_decimals = decimals[:2]
    if decimals[2:] != "00":
        final_decimals = decimals.rstrip("0")

    return f"${integer}.{final_decimals}"
