from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session, aliased, selectinload

from models.position import (
    CATEGORY_LABELS,
    POSITION_CATEGORY_VALUES,
    POSITION_TYPE_VALUES,
    Position,
    PositionAnalysis,
    PositionOut,
    PositionSnapshot,
)
from schemas.position import PositionCreate, PositionUpdate
from services.position_analysis import analysis_to_dto, normalize_analysis
from services.position_errors import PositionError
from services.position_sizing import compute_position_size, resolve_size_type
from utils.price_labels import (
    append_currency_if_missing,
    format_price_label,
    format_return_label,
    infer_currency_from_label,
    parse_numeric_value,
    parse_return_value,
)

logger = logging.getLogger(__name__)

PG_UNIQUE_VIOLATION = "23505"


# -----------------------
# Normalization
# -----------------------

def _text(value: Any) -> str:
    """Request values that are not strings count as empty."""
    return value.strip() if isinstance(value, str) else ""


def _normalize_category(value: Any) -> str:
    category = _text(value).lower()
    if category not in POSITION_CATEGORY_VALUES:
        raise PositionError("INVALID_CATEGORY", "Invalid category value", POSITION_CATEGORY_VALUES)
    return category


def _normalize_position_type(value: Any) -> str:
    position_type = _text(value).lower()
    if position_type not in POSITION_TYPE_VALUES:
        raise PositionError("INVALID_POSITION_TYPE", "Invalid position type value", POSITION_TYPE_VALUES)
    return position_type


def _normalize_currency(value: Any) -> Optional[str]:
    code = _text(value).upper()
    return code if len(code) == 3 and code.isalpha() else None


def _resolve_quote_symbol(symbol: str, incoming: Any) -> str:
    explicit = _text(incoming).upper()
    return explicit or symbol.upper()


def _is_unique_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code:
        return code == PG_UNIQUE_VIOLATION
    return "unique" in str(orig).lower()


# -----------------------
# Mapping
# -----------------------

def _finite_or_zero(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def to_dto(position: Position, snapshot: Optional[PositionSnapshot]) -> PositionOut:
    """Stored view of a position: its metadata plus the latest snapshot, with label fallbacks."""
    stored_label = snapshot.current_price_label if snapshot else None

    price_value = snapshot.current_price_value if snapshot else None
    if price_value is None:
        price_value = parse_numeric_value(stored_label)

    price_currency = snapshot.current_price_currency if snapshot else None
    if price_currency is None:
        price_currency = (
            infer_currency_from_label(stored_label or position.purchase_price_label)
            or position.position_currency
        )

    price_label = stored_label
    if price_label is None:
        fallback_value = price_value if price_value is not None else parse_numeric_value(position.purchase_price_label)
        price_label = format_price_label(fallback_value, price_currency) or position.purchase_price_label

    return_value = _finite_or_zero(snapshot.return_value if snapshot else None)
    return_label = (snapshot.return_label if snapshot else None) or format_return_label(return_value)

    return PositionOut(
        id=position.slug,
        database_id=position.id,
        slug=position.slug,
        symbol=position.symbol,
        quote_symbol=position.quote_symbol,
        name=position.name,
        category=position.category,
        category_name=CATEGORY_LABELS.get(position.category, position.category),
        position_type=position.position_type,
        purchase_price=position.purchase_price_label,
        position_size_type=position.position_size_type,
        position_size_value=position.position_size_value,
        position_size_label=position.position_size_label,
        position_size_per_pip_value=position.position_size_per_pip,
        position_size_per_pip_label=position.position_size_per_pip_label,
        position_total_value=position.position_total_value,
        position_total_value_currency=position.position_total_value_currency,
        position_total_value_label=position.position_total_value_label,
        current_price=price_label,
        current_price_value=price_value,
        current_price_currency=price_currency,
        return_label=return_label,
        return_value=return_value,
        latest_price_updated_at=snapshot.recorded_at if snapshot else None,
        analysis=analysis_to_dto(position.analysis),
    )


# -----------------------
# Queries
# -----------------------

def _with_latest_snapshot(db: Session) -> Query:
    """Positions left-joined with their most recent snapshot (ties: highest id)."""
    ranked = select(
        PositionSnapshot,
        func.row_number()
        .over(
            partition_by=PositionSnapshot.position_id,
            order_by=[PositionSnapshot.recorded_at.desc(), PositionSnapshot.id.desc()],
        )
        .label("snapshot_rank"),
    ).subquery("ranked_snapshots")
    latest = aliased(PositionSnapshot, ranked)

    return (
        db.query(Position, latest)
        .outerjoin(latest, and_(latest.position_id == Position.id, ranked.c.snapshot_rank == 1))
        .options(selectinload(Position.analysis))
    )


def _identifier_filters(identifier: Any) -> list:
    """Lookup filters in priority order: slug first, then a numeric database id."""
    if isinstance(identifier, int) and not isinstance(identifier, bool):
        return [Position.id == identifier]
    text = _text(identifier)
    if not text:
        return []
    filters = [Position.slug == text.lower()]
    if text.isdigit():
        filters.append(Position.id == int(text))
    return filters


def _find_position(db: Session, identifier: Any) -> Optional[Position]:
    for condition in _identifier_filters(identifier):
        position = db.query(Position).filter(condition).first()
        if position is not None:
            return position
    return None


def list_positions(db: Session) -> List[PositionOut]:
    rows = _with_latest_snapshot(db).order_by(Position.created_at.desc(), Position.id.desc()).all()
    return [to_dto(position, snapshot) for position, snapshot in rows]


def get_position(db: Session, identifier: Any) -> Optional[PositionOut]:
    for condition in _identifier_filters(identifier):
        row = _with_latest_snapshot(db).filter(condition).first()
        if row is not None:
            position, snapshot = row
            return to_dto(position, snapshot)
    return None


# -----------------------
# Writes
# -----------------------

def _build_initial_snapshot(
    position_id: int,
    price_label: str,
    position_currency: Optional[str],
    return_input: Any,
) -> PositionSnapshot:
    return_value = parse_return_value(return_input)
    return PositionSnapshot(
        position_id=position_id,
        current_price_value=parse_numeric_value(price_label),
        current_price_currency=infer_currency_from_label(price_label) or position_currency,
        current_price_label=price_label,
        return_value=return_value,
        return_label=format_return_label(return_value),
    )


def create_position(db: Session, payload: PositionCreate) -> PositionOut:
    """
    Insert a position, its first snapshot and optional analysis in one transaction.

    Validation runs before any I/O and stops at the first bad field, in the order
    symbol, purchase price, category, position type, position size, analysis.
    """
    symbol_input = _text(payload.symbol)
    if not symbol_input:
        raise PositionError("INVALID_SYMBOL", "Symbol is required")

    purchase_input = _text(payload.purchase_price)
    if not purchase_input:
        raise PositionError("INVALID_PURCHASE_PRICE", "Purchase price is required")

    category = _normalize_category(payload.category)
    position_type = _normalize_position_type(payload.position_type)
    size_type = resolve_size_type(payload.position_size_type)

    preferred_currency = _normalize_currency(payload.position_currency)
    purchase_label = append_currency_if_missing(purchase_input, preferred_currency)
    current_input = _text(payload.current_price)
    current_label = append_currency_if_missing(current_input, preferred_currency) if current_input else purchase_label

    size = compute_position_size(
        size_type,
        purchase_label=purchase_label,
        position_currency=preferred_currency or infer_currency_from_label(purchase_label),
        size_value=payload.position_size_value,
        size_label=payload.position_size_label,
        per_pip_label=payload.position_size_per_pip_label,
    )
    analysis_values = normalize_analysis(payload.analysis) if payload.analysis is not None else None

    symbol = symbol_input.upper()
    position = Position(
        slug=symbol.lower(),
        symbol=symbol,
        quote_symbol=_resolve_quote_symbol(symbol, payload.quote_symbol),
        name=_text(payload.name) or symbol,
        category=category,
        position_type=position_type,
        purchase_price_label=purchase_label,
        **size.columns(),
    )

    try:
        db.add(position)
        db.flush()
        position_id = position.id
        db.add(_build_initial_snapshot(position_id, current_label, size.position_currency, payload.return_value))
        if analysis_values is not None:
            db.add(PositionAnalysis(position_id=position_id, **analysis_values))
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if _is_unique_violation(exc):
            raise PositionError("POSITION_EXISTS", "Position with this symbol already exists") from exc
        raise
    except Exception:
        db.rollback()
        raise

    logger.info("position created slug=%s quote_symbol=%s", position.slug, position.quote_symbol)
    return get_position(db, position_id)  # type: ignore[return-value]


def update_position(db: Session, identifier: Any, payload: PositionUpdate) -> PositionOut:
    """Metadata-only update; prices change only through snapshots."""
    position = _find_position(db, identifier)
    if not position:
        raise PositionError("POSITION_NOT_FOUND", "Position not found")

    fields = payload.model_fields_set
    changes: Dict[str, Any] = {}
    if "name" in fields and payload.name is not None:
        changes["name"] = _text(payload.name) or position.symbol
    if "category" in fields:
        changes["category"] = _normalize_category(payload.category)
    if "position_type" in fields:
        changes["position_type"] = _normalize_position_type(payload.position_type)
    if "quote_symbol" in fields:
        changes["quote_symbol"] = _resolve_quote_symbol(position.symbol, payload.quote_symbol)

    if changes:
        for key, value in changes.items():
            setattr(position, key, value)
        db.commit()
        logger.info("position updated slug=%s fields=%s", position.slug, ",".join(sorted(changes)))

    return get_position(db, position.id)  # type: ignore[return-value]


def delete_position(db: Session, identifier: Any) -> Dict[str, Any]:
    position = _find_position(db, identifier)
    if not position:
        raise PositionError("POSITION_NOT_FOUND", "Position not found")

    deleted = {"id": position.id, "slug": position.slug}
    try:
        db.delete(position)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("position deleted slug=%s", deleted["slug"])
    return deleted


def upsert_position_analysis(db: Session, identifier: Any, payload: Any) -> PositionOut:
    """Create or replace the analysis of a position."""
    values = normalize_analysis(payload)
    position = _find_position(db, identifier)
    if not position:
        raise PositionError("POSITION_NOT_FOUND", "Position not found")

    try:
        if position.analysis is None:
            position.analysis = PositionAnalysis(**values)
        else:
            for key, value in values.items():
                setattr(position.analysis, key, value)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("position analysis saved slug=%s trend=%s", position.slug, values["trend"])
    return get_position(db, position.id)  # type: ignore[return-value]


def delete_position_analysis(db: Session, identifier: Any) -> PositionOut:
    """Drop the analysis of a position; a position without one is returned unchanged."""
    position = _find_position(db, identifier)
    if not position:
        raise PositionError("POSITION_NOT_FOUND", "Position not found")

    if position.analysis is not None:
        try:
            position.analysis = None
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info("position analysis deleted slug=%s", position.slug)

    return get_position(db, position.id)  # type: ignore[return-value]
