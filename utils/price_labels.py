# utils/price_labels.py
"""
Price and return labels as stored and displayed across PortiX.

Labels are free-form, locale-formatted strings such as "1 234,56 USD" or "+4.2%".
Everything here is best-effort display formatting, not financial arithmetic:
parsing keeps only the first numeral of a label and drops grouping separators,
so callers must not rely on a parse/format round trip being exact.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any, Optional

# |value| at or above this gets 2 decimals, below it 3-4 decimals.
PRECISION_THRESHOLD = 100

GROUP_SEPARATOR = " "
DECIMAL_SEPARATOR = ","
_DECIMAL_PRECISION = 400

_WHITESPACE = re.compile(r"\s+")
_NUMERAL = re.compile(r"[-+]?\d+(?:\.\d+)?")
_CURRENCY_SUFFIX = re.compile(r"([A-Za-z]{3})$")


def _finite_number(value: Any) -> Optional[float]:
    """Float for finite int/float input; None for bools, non-numbers, NaN, inf and out-of-range ints."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def parse_numeric_value(label: Any) -> Optional[float]:
    """
    "1 234,56 USD" -> 1234.56, "-3,5%" -> -3.5, "n/a" -> None.

    Whitespace is removed and the first decimal comma becomes a point before the
    first numeral is taken. Exponents are not understood ("1e5" -> 1.0).
    """
    if not isinstance(label, str) or not label:
        return None

    compact = _WHITESPACE.sub("", label).replace(",", ".", 1)
    match = _NUMERAL.search(compact)
    if not match:
        return None

    value = float(match.group(0))
    return value if math.isfinite(value) else None


def infer_currency_from_label(label: Any) -> Optional[str]:
    if not isinstance(label, str) or not label:
        return None
    match = _CURRENCY_SUFFIX.search(label.strip())
    if not match:
        return None
    return match.group(1).upper()


def format_price_label(value: Any, currency: Optional[str] = None) -> Optional[str]:
    """
    1234.5, "USD" -> "1 234,50 USD"; 0.12345 -> "0,1235"; NaN -> None.
    """
    number = _finite_number(value)
    if number is None:
        return None

    if abs(number) >= PRECISION_THRESHOLD:
        min_places, max_places = 2, 2
    else:
        min_places, max_places = 3, 4

    quantum = Decimal(1).scaleb(-max_places)
    with localcontext() as ctx:
        # room for every digit of the largest float plus the fraction
        ctx.prec = _DECIMAL_PRECISION
        rounded = Decimal(repr(number)).quantize(quantum, rounding=ROUND_HALF_UP)
    whole, _, fraction = f"{rounded:,f}".partition(".")
    while len(fraction) > min_places and fraction.endswith("0"):
        fraction = fraction[:-1]

    formatted = f"{whole.replace(',', GROUP_SEPARATOR)}{DECIMAL_SEPARATOR}{fraction}"
    code = (currency or "").strip()
    return f"{formatted} {code}" if code else formatted


def parse_return_value(value: Any) -> float:
    number = _finite_number(value)
    if number is not None:
        return number
    if isinstance(value, str):
        try:
            parsed = float(value.replace("%", "").strip())
        except ValueError:
            return 0.0
        if math.isfinite(parsed):
            return parsed
    return 0.0


def format_return_label(value: float) -> str:
    """4.25 -> "+4.3%", -1.04 -> "-1.0%", 0 -> "0.0%"."""
    scaled = value * 10 + 0.5
    rounded = math.floor(scaled) / 10 if math.isfinite(scaled) else value
    if rounded == 0:
        rounded = 0.0
    prefix = "+" if rounded > 0 else ""
    return f"{prefix}{rounded:.1f}%"


def append_currency_if_missing(label: str, currency: Optional[str]) -> str:
    trimmed = (label or "").strip()
    if not trimmed or not currency:
        return trimmed
    if _CURRENCY_SUFFIX.search(trimmed):
        return trimmed
    return f"{trimmed} {currency}"


@dataclass(frozen=True)
class PriceLabel:
    """A display label together with the number and currency read out of it."""

    raw: str
    value: Optional[float]
    currency: Optional[str]

    @classmethod
    def parse(cls, label: Optional[str]) -> "PriceLabel":
        raw = (label or "").strip()
        return cls(
            raw=raw,
            value=parse_numeric_value(raw),
            currency=infer_currency_from_label(raw),
        )

    @classmethod
    def from_value(cls, value: float, currency: Optional[str] = None) -> Optional["PriceLabel"]:
        formatted = format_price_label(value, currency)
        if formatted is None:
            return None
        code = (currency or "").strip().upper() or None
        return cls(raw=formatted, value=float(value), currency=code)

    def format(self) -> str:
        """Canonical label for the parsed value, or the raw text when nothing parsed."""
        if self.value is None:
            return self.raw
        return format_price_label(self.value, self.currency) or self.raw
