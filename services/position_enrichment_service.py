from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Protocol

from sqlalchemy.orm import Session

from models.position import PositionOut
from services.position_service import list_positions
from services.tradingview_service import Quote
from utils.price_labels import format_price_label, format_return_label, parse_numeric_value

logger = logging.getLogger(__name__)


class QuoteSource(Protocol):
    async def fetch_quotes(self, symbols: Iterable[Any]) -> List[Quote]: ...


def _live_price(quote: Optional[Quote]) -> Optional[float]:
    if quote is None:
        return None
    price = quote.price
    if isinstance(price, bool) or not isinstance(price, (int, float)):
        return None
    try:
        value = float(price)
    except OverflowError:
        return None
    return value if math.isfinite(value) else None


def collect_quote_symbols(positions: Iterable[PositionOut]) -> List[str]:
    seen: set[str] = set()
    out: List[str] = []
    for p in positions:
        symbol = (p.quote_symbol or "").strip()
        if symbol and symbol not in seen:
            seen.add(symbol)
            out.append(symbol)
    return out


def apply_quote(position: PositionOut, quote: Optional[Quote]) -> PositionOut:
    """
    Overlay a live quote on a stored position. Without a finite live price the
    position comes back as-is.
    """
    price = _live_price(quote)
    if price is None:
        return position

    currency = quote.currency or position.current_price_currency  # type: ignore[union-attr]
    label = format_price_label(price, currency) or position.current_price

    purchase = parse_numeric_value(position.purchase_price)
    if purchase is not None and purchase != 0:
        return_value = (price - purchase) / purchase * 100.0
    else:
        return_value = position.return_value
    if not math.isfinite(return_value):
        return_value = position.return_value

    return position.model_copy(
        update={
            "current_price": label,
            "current_price_value": price,
            "current_price_currency": currency,
            "return_value": return_value,
            "return_label": format_return_label(return_value),
        }
    )


async def enrich_positions(positions: List[PositionOut], quotes: QuoteSource) -> List[PositionOut]:
    """
    One batched quote fetch for every distinct quote symbol, overlaid in memory.

    A failing provider never fails the caller: the error is logged and the stored
    snapshot values are returned untouched. Nothing is written back to the database.
    """
    symbols = collect_quote_symbols(positions)
    if not symbols:
        return positions

    try:
        fetched = await quotes.fetch_quotes(symbols)
    except Exception as exc:
        logger.warning(
            "Quote fetch failed for %d symbols, serving stored snapshots: %s",
            len(symbols), exc, exc_info=True,
        )
        return positions

    by_symbol: Dict[str, Quote] = {}
    for q in fetched or []:
        if q is not None and q.symbol:
            by_symbol[q.symbol] = q

    return [apply_quote(p, by_symbol.get((p.quote_symbol or "").strip())) for p in positions]


async def list_positions_with_quotes(db: Session, quotes: QuoteSource) -> List[PositionOut]:
    return await enrich_positions(list_positions(db), quotes)
