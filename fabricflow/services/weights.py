from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django.conf import settings

from fabricflow.exceptions import InvalidWeightError, NegativeNetWeightError, ValidationError

TWO_PLACES = Decimal("0.01")
# Largest reading a platform scale reports; stored weights have 8 integer digits.
MAX_READING_KG = Decimal("9999.99")


def _q(x):
    try:
        return Decimal(str(x)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidWeightError(f"Weight {x} is out of range")


@dataclass(frozen=True)
class NormalizedWeight:
    measured_gross: Decimal
    display_gross: Decimal
    tare: Decimal
    net: Decimal


def parse_scale_reading(raw) -> Decimal:
    """Turn a scale or keyboard reading (``"50.2"``, ``"50.2 kg"``, 50.2) into a Decimal."""
    if isinstance(raw, (Decimal, int, float)):
        text = str(raw)
    else:
        text = str(raw or "").strip().lower()
    if text.endswith("kg"):
        text = text[:-2].strip()
    if not text:
        raise InvalidWeightError("Gross weight is required")
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise InvalidWeightError(f"Unreadable scale value {raw!r}")
    if not value.is_finite():
        raise InvalidWeightError(f"Unreadable scale value {raw!r}")
    if value > MAX_READING_KG:
        raise InvalidWeightError(f"Scale value {raw!r} exceeds {MAX_READING_KG} kg", gross=value)
    return value


def normalize(gross_raw, tare, shrink_rap) -> NormalizedWeight:
    """Net excludes shrink-wrap; the display gross includes it."""
    gross = parse_scale_reading(gross_raw)
    if gross <= 0:
        raise InvalidWeightError("Gross weight must be greater than zero", gross=gross)
    tare = Decimal(str(tare or 0))
    shrink_rap = Decimal(str(shrink_rap or 0))
    if tare < 0 or shrink_rap < 0:
        raise ValidationError("Packaging weights cannot be negative")

    net = _q(gross - tare)
    if net < 0:
        raise NegativeNetWeightError(
            f"Net weight {net} kg is negative (gross {_q(gross)} kg, tare {_q(tare)} kg); re-weigh the roll",
            gross=_q(gross),
            tare=_q(tare),
        )
    return NormalizedWeight(
        measured_gross=_q(gross),
        display_gross=_q(gross + shrink_rap),
        tare=_q(tare),
        net=net,
    )


def tolerance():
    """Configured planned/measured tolerance in kg, or None when the check is off."""
    value = getattr(settings, "FABRICFLOW_WEIGHT_TOLERANCE_KG", None)
    if value in (None, ""):
        return None
    return Decimal(str(value))


def exceeds_tolerance(net: Decimal, planned, limit=None) -> bool:
    if limit is None:
        limit = tolerance()
    planned = Decimal(str(planned or 0))
    if limit is None or planned <= 0:
        return False
    return abs(Decimal(net) - planned) > limit
