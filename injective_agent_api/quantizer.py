"""
Price and quantity conversion to the exchange's fixed-point chain format.

Chain prices are quote base-units per base base-unit, chain quantities are
base base-units, and both travel as Cosmos SDK Dec values: integers scaled
by 10^18. All arithmetic is Decimal; floats are rejected.
"""
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP, localcontext

from .errors import InvalidTick, QuantizationError
from .models import CHAIN_DEC_PRECISION

# Enough digits for 18-decimal tokens scaled by another 10^18
_PRECISION = 80


def _as_decimal(value) -> Decimal:
    if isinstance(value, float):
        raise QuantizationError(f"Refusing float input {value!r}; pass a Decimal or string")
    try:
        result = Decimal(value)
    except (ArithmeticError, ValueError, TypeError):
        raise QuantizationError(f"Not a decimal value: {value!r}")
    if not result.is_finite():
        raise QuantizationError(f"Value must be finite, got {value!r}")
    return result


def _check_tick(tick_size) -> Decimal:
    tick = _as_decimal(tick_size)
    if tick <= 0:
        raise InvalidTick(tick_size)
    return tick


def quantize_to_tick(value, tick_size) -> Decimal:
    """Round to the nearest multiple of tick_size (halves round away from zero)."""
    tick = _check_tick(tick_size)
    amount = _as_decimal(value)
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        steps = (amount / tick).to_integral_value(rounding=ROUND_HALF_UP)
        return steps * tick


def ceil_to_tick(value, tick_size) -> Decimal:
    """Round up to the next multiple of tick_size (no-op when already aligned)."""
    tick = _check_tick(tick_size)
    amount = _as_decimal(value)
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        steps = (amount / tick).to_integral_value(rounding=ROUND_CEILING)
        return steps * tick


def tens_multiplier(tick_size) -> int:
    """Base-10 exponent of a tick size, e.g. 0.001 -> -3."""
    return _check_tick(tick_size).adjusted()


def _to_fixed_point(aligned: Decimal, exponent: int) -> str:
    if aligned < 0:
        raise QuantizationError(f"Negative values cannot be sent on chain: {aligned}")
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        scaled = aligned.scaleb(exponent)
        integral = scaled.to_integral_value()
        if integral != scaled:
            raise QuantizationError(
                f"{aligned} does not scale to an integer at 10^{exponent}"
            )
    return str(int(integral))


def to_chain_price(value, tick_size, base_decimals: int, quote_decimals: int) -> str:
    """Human quote-per-base price -> chain fixed-point integer string."""
    aligned = quantize_to_tick(value, tick_size)
    return _to_fixed_point(aligned, quote_decimals - base_decimals + CHAIN_DEC_PRECISION)


def to_chain_quantity(value, tick_size, base_decimals: int) -> str:
    """Human base-token quantity -> chain fixed-point integer string."""
    aligned = quantize_to_tick(value, tick_size)
    return _to_fixed_point(aligned, base_decimals + CHAIN_DEC_PRECISION)


def from_chain_price(chain_value: str, base_decimals: int, quote_decimals: int) -> Decimal:
    """Inverse of to_chain_price (without tick alignment)."""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return _as_decimal(chain_value).scaleb(-(quote_decimals - base_decimals + CHAIN_DEC_PRECISION))


def from_chain_quantity(chain_value: str, base_decimals: int) -> Decimal:
    """Inverse of to_chain_quantity (without tick alignment)."""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return _as_decimal(chain_value).scaleb(-(base_decimals + CHAIN_DEC_PRECISION))
