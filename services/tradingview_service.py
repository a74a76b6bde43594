# services/tradingview_service.py
from __future__ import annotations

import logging
import math
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

TRADINGVIEW_SCAN_URL = "https://scanner.tradingview.com/global/scan"
DEFAULT_HEADERS: Dict[str, str] = {
    "Content-Type": "application/json",
    "User-Agent": "PortiX Backend/1.0",
}
DEFAULT_COLUMNS: Tuple[str, ...] = ("close", "currency", "pricescale", "name", "description", "exchange")
DEFAULT_TIMEOUT_SEC = 10.0


class QuoteProviderError(Exception):
    """Non-2xx answer from the quote provider."""

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"TradingView request failed with status {status_code}")
        self.status_code = status_code
        self.body = body


@dataclass(frozen=True)
class QuoteProviderConfig:
    url: str = TRADINGVIEW_SCAN_URL
    headers: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HEADERS))
    columns: Tuple[str, ...] = DEFAULT_COLUMNS
    timeout: float = DEFAULT_TIMEOUT_SEC

    @classmethod
    def from_env(cls) -> "QuoteProviderConfig":
        return cls(
            url=os.getenv("TRADINGVIEW_SCAN_URL", TRADINGVIEW_SCAN_URL),
            timeout=float(os.getenv("QUOTE_PROVIDER_TIMEOUT", str(DEFAULT_TIMEOUT_SEC))),
        )


@dataclass(frozen=True)
class Quote:
    symbol: Optional[str]
    price: Optional[float]
    raw_close: Any = None
    pricescale: Optional[float] = None
    currency: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    exchange: Optional[str] = None


def normalize_symbols(symbols: Iterable[Any]) -> List[str]:
    """Trimmed, non-blank, first-seen-order unique tickers."""
    seen: set[str] = set()
    out: List[str] = []
    for value in symbols or []:
        if not isinstance(value, str):
            continue
        ticker = value.strip()
        if not ticker or ticker in seen:
            continue
        seen.add(ticker)
        out.append(ticker)
    return out


def _number(x: Any) -> Optional[float]:
    if isinstance(x, bool) or not isinstance(x, (int, float)):
        return None
    try:
        value = float(x)
    except OverflowError:
        # integers past float range
        return None
    return value if math.isfinite(value) else None


def _text(x: Any) -> Optional[str]:
    return x if isinstance(x, str) else None


def _row_to_quote(row: Any, columns: Tuple[str, ...]) -> Quote:
    row = row if isinstance(row, dict) else {}
    values = row.get("d")
    values = values if isinstance(values, list) else []
    # short rows leave the trailing columns as None
    by_column = {col: (values[i] if i < len(values) else None) for i, col in enumerate(columns)}

    close = by_column.get("close")
    return Quote(
        symbol=_text(row.get("s")),
        price=_number(close),
        raw_close=close,
        pricescale=_number(by_column.get("pricescale")),
        currency=_text(by_column.get("currency")),
        name=_text(by_column.get("name")),
        description=_text(by_column.get("description")),
        exchange=_text(by_column.get("exchange")),
    )


class TradingViewService:
    """
    Batch quotes from the TradingView scanner.

    One POST per call, whatever the number of tickers. Results follow the provider's
    row order, not the input order, and unknown tickers are simply absent.
    """

    def __init__(self, config: Optional[QuoteProviderConfig] = None):
        self.config = config or QuoteProviderConfig()

    @asynccontextmanager
    async def _client(self, client: Optional[httpx.AsyncClient] = None):
        if client is not None:
            yield client
        else:
            async with httpx.AsyncClient(timeout=self.config.timeout) as c:
                yield c

    async def fetch_quotes(
        self,
        symbols: Iterable[Any],
        client: Optional[httpx.AsyncClient] = None,
    ) -> List[Quote]:
        tickers = normalize_symbols(symbols)
        if not tickers:
            return []

        columns = tuple(self.config.columns)
        async with self._client(client) as c:
            r = await c.post(
                self.config.url,
                json={"symbols": {"tickers": tickers}, "columns": list(columns)},
                headers=self.config.headers,
            )

        if r.status_code < 200 or r.status_code >= 300:
            raise QuoteProviderError(r.status_code, r.text)

        try:
            payload = r.json()
        except ValueError:
            logger.warning("TradingView returned a non-JSON body for %d tickers", len(tickers))
            return []
        if not isinstance(payload, dict):
            return []

        rows = payload.get("data")
        if not isinstance(rows, list):
            return []
        return [_row_to_quote(row, columns) for row in rows]
