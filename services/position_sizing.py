"""
Position size and total value, computed once when a position is created.

  capital  investment amount label, e.g. "1000 USD"; total = amount
  units    unit count; total = units * purchase price
  pips     pip count and per-pip value label; total = pips * per-pip value
"""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from models.position import POSITION_SIZE_TYPE_VALUES
from services.position_errors import PositionError
from utils.price_labels import (
    append_currency_if_missing,
    format_price_label,
    infer_currency_from_label,
    parse_numeric_value,
)


@dataclass(frozen=True)
class PositionSize:
    position_size_type: Optional[str] = None
    position_size_value: Optional[float] = None
    position_size_label: Optional[str] = None
    position_size_per_pip: Optional[float] = None
    position_size_per_pip_label: Optional[str] = None
    position_total_value: Optional[float] = None
    position_total_value_currency: Optional[str] = None
    position_total_value_label: Optional[str] = None
    position_currency: Optional[str] = None

    def columns(self) -> Dict[str, Any]:
        return asdict(self)


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _finite(value: float) -> Optional[float]:
    return value if math.isfinite(value) else None


def _count(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return _finite(float(value))
        except OverflowError:
            return None
    if isinstance(value, str):
        try:
            return _finite(float(value.strip().replace(",", ".")))
        except ValueError:
            return None
    return None


def _plain(number: float) -> str:
    return str(int(number)) if number.is_integer() else repr(number)


def resolve_size_type(value: Any) -> Optional[str]:
    """None or blank means "no sizing"; anything else must be a known size type."""
    if value is None:
        return None
    size_type = value.strip().lower() if isinstance(value, str) else None
    if size_type == "":
        return None
    if size_type not in POSITION_SIZE_TYPE_VALUES:
        raise PositionError("INVALID_POSITION_SIZE_TYPE", "Invalid position size type", POSITION_SIZE_TYPE_VALUES)
    return size_type


def compute_position_size(
    size_type: Optional[str],
    *,
    purchase_label: str,
    position_currency: Optional[str],
    size_value: Any = None,
    size_label: Any = None,
    per_pip_label: Any = None,
) -> PositionSize:
    if size_type is None:
        return PositionSize(position_currency=position_currency)

    if size_type == "capital":
        label_input = _text(size_label)
        if not label_input:
            raise PositionError("INVALID_POSITION_SIZE_VALUE", "Investment amount is required")
        capital_label = append_currency_if_missing(label_input, position_currency)
        amount = parse_numeric_value(capital_label)
        if amount is None:
            return PositionSize(
                position_size_type=size_type,
                position_size_label=capital_label,
                position_total_value_currency=position_currency,
                position_total_value_label=capital_label,
                position_currency=position_currency,
            )
        currency = infer_currency_from_label(capital_label) or position_currency
        return PositionSize(
            position_size_type=size_type,
            position_size_value=amount,
            position_size_label=capital_label,
            position_total_value=amount,
            position_total_value_currency=currency,
            position_total_value_label=format_price_label(amount, currency) or capital_label,
            position_currency=currency,
        )

    if size_type == "units":
        units = _count(size_value)
        if units is None or units <= 0:
            raise PositionError("INVALID_POSITION_SIZE_VALUE", "Invalid units amount")
        purchase = parse_numeric_value(purchase_label)
        if purchase is None:
            raise PositionError(
                "INVALID_PURCHASE_PRICE_VALUE",
                "Unable to compute position value from purchase price",
            )
        total = _finite(units * purchase)
        currency = infer_currency_from_label(purchase_label) or position_currency
        return PositionSize(
            position_size_type=size_type,
            position_size_value=units,
            position_size_label=_plain(units),
            position_total_value=total,
            position_total_value_currency=currency,
            position_total_value_label=format_price_label(total, currency) or f"{_plain(units)} * {purchase_label}",
            position_currency=position_currency or currency,
        )

    # pips
    pips = _count(size_value)
    if pips is None or pips <= 0:
        raise PositionError("INVALID_POSITION_SIZE_VALUE", "Invalid pip count")
    pip_label = append_currency_if_missing(_text(per_pip_label), position_currency)
    per_pip = parse_numeric_value(pip_label)
    if per_pip is None:
        raise PositionError("INVALID_POSITION_SIZE_PER_PIP", "Invalid per-pip value")
    currency = infer_currency_from_label(pip_label) or position_currency
    total = _finite(per_pip * pips)
    return PositionSize(
        position_size_type=size_type,
        position_size_value=pips,
        position_size_label=f"{_plain(pips)} pips",
        position_size_per_pip=per_pip,
        position_size_per_pip_label=pip_label,
        position_total_value=total,
        position_total_value_currency=currency,
        position_total_value_label=format_price_label(total, currency) or f"{_plain(pips)} * {pip_label}",
        position_currency=currency,
    )
