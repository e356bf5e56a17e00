from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal

SAFETY_BUFFER_PCT = 110


def withdrawal_amount(balance: int, withdrawal_percentage: float) -> int:
    """Share of the pool's quote balance to drain, floored to whole wei."""
    if not 0 < withdrawal_percentage <= 100:
        raise ValueError("withdrawal_percentage must be in (0, 100]")
    scaled = Decimal(int(balance)) * Decimal(str(withdrawal_percentage)) / Decimal(100)
    return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


def required_base_amount(base_reserve: int, quote_reserve: int, quote_amount: int) -> int:
    """Spot-proportional base-token input for ``quote_amount`` out of the pool.

    This is ``floor(Rb * amount / Rq)``, not a constant-product curve solve.
    """
    if quote_reserve <= 0:
        raise ValueError("pool holds no quote asset; cannot price from reserves")
    return int(base_reserve) * int(quote_amount) // int(quote_reserve)


def apply_buffer(amount: int, buffer_pct: int = SAFETY_BUFFER_PCT) -> int:
    return int(amount) * int(buffer_pct) // 100


def format_units(amount: int, decimals: int) -> str:
    return format(Decimal(int(amount)).scaleb(-int(decimals)).normalize(), "f")
