"""Human-readable labels for active filter chips."""

from datetime import datetime, timezone
from typing import Optional

from .slots import GrowthFilter, NumericRange

_OPERATOR_SYMBOLS = {"GT": ">", "GTE": ">=", "LT": "<", "LTE": "<="}


def format_compact_number(value: Optional[float]) -> str:
    """1500 -> '1.5K', 2000000 -> '2M', 950 -> '950'."""
    if value is None:
        return ""
    for threshold, suffix in ((1_000_000_000, "B"), (1_000_000, "M"), (1_000, "K")):
        if abs(value) >= threshold:
            scaled = value / threshold
            text = f"{scaled:.1f}".rstrip("0").rstrip(".")
            return f"{text}{suffix}"
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


def format_range(value: NumericRange) -> str:
    low, high = format_compact_number(value.min), format_compact_number(value.max)
    if value.min is not None and value.max is not None:
        return f"{low} to {high}"
    if value.min is not None:
        return f"{low}+"
    return f"up to {high}"


def format_percent(value: float) -> str:
    return f"{value:g}%"


def format_growth(value: GrowthFilter) -> str:
    symbol = _OPERATOR_SYMBOLS.get(value.operator, value.operator)
    unit = value.interval_unit.lower() + ("s" if value.interval != 1 else "")
    return f"{symbol} {value.percentage_value:g}% in {value.interval} {unit}"


def format_enum(value: str) -> str:
    return value.replace("_", " ").title()


def format_timestamp(value: str, now: Optional[datetime] = None) -> str:
    """'Within N days' relative to now, or the raw value if unparseable."""
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    days = max(0, (now - moment).days)
    return f"Within {days} days"
