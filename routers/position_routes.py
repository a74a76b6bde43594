# routers/position_routes.py
from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from database import get_db
from models.position import PositionOut
from schemas.position import PositionCreate, PositionUpdate
from services.position_enrichment_service import enrich_positions, list_positions_with_quotes
from services.position_service import (
    PositionError,
    create_position,
    delete_position,
    delete_position_analysis,
    get_position,
    update_position,
    upsert_position_analysis,
)
from services.tradingview_service import QuoteProviderConfig, TradingViewService

router = APIRouter()

_STATUS_BY_CODE = {
    "POSITION_EXISTS": status.HTTP_409_CONFLICT,
    "POSITION_NOT_FOUND": status.HTTP_404_NOT_FOUND,
}


# ---- Dependency to get the quote provider (config from env inside) ----
def get_quote_service() -> TradingViewService:
    return TradingViewService(QuoteProviderConfig.from_env())


def _error_response(exc: PositionError) -> JSONResponse:
    return JSONResponse(
        status_code=_STATUS_BY_CODE.get(exc.code, status.HTTP_400_BAD_REQUEST),
        content=exc.to_dict(),
    )


def _serialize(position: PositionOut) -> Dict[str, Any]:
    return position.model_dump(by_alias=True, mode="json")


def _serialize_all(positions: List[PositionOut]) -> List[Dict[str, Any]]:
    return [_serialize(p) for p in positions]


@router.get("")
async def get_positions(
    db: Session = Depends(get_db),
    quotes: TradingViewService = Depends(get_quote_service),
):
    positions = await list_positions_with_quotes(db, quotes)
    return {"data": _serialize_all(positions)}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_user_position(
    payload: PositionCreate,
    db: Session = Depends(get_db),
):
    try:
        position = create_position(db, payload)
    except PositionError as exc:
        return _error_response(exc)
    return {"data": _serialize(position)}


@router.get("/{identifier}")
async def get_single_position(
    identifier: str,
    db: Session = Depends(get_db),
    quotes: TradingViewService = Depends(get_quote_service),
):
    position = get_position(db, identifier)
    if position is None:
        return _error_response(PositionError("POSITION_NOT_FOUND", "Position not found"))
    enriched = await enrich_positions([position], quotes)
    return {"data": _serialize(enriched[0])}


@router.patch("/{identifier}")
def update_user_position(
    identifier: str,
    payload: PositionUpdate,
    db: Session = Depends(get_db),
):
    try:
        position = update_position(db, identifier, payload)
    except PositionError as exc:
        return _error_response(exc)
    return {"data": _serialize(position)}


@router.delete("/{identifier}")
def delete_user_position(
    identifier: str,
    db: Session = Depends(get_db),
):
    try:
        deleted = delete_position(db, identifier)
    except PositionError as exc:
        return _error_response(exc)
    return {"success": True, "data": deleted}


@router.put("/{identifier}/analysis")
def save_position_analysis(
    identifier: str,
    payload: Any = Body(None),
    db: Session = Depends(get_db),
):
    try:
        position = upsert_position_analysis(db, identifier, payload)
    except PositionError as exc:
        return _error_response(exc)
    return {"data": _serialize(position)}


@router.delete("/{identifier}/analysis")
def remove_position_analysis(
    identifier: str,
    db: Session = Depends(get_db),
):
    try:
        position = delete_position_analysis(db, identifier)
    except PositionError as exc:
        return _error_response(exc)
    return {"data": _serialize(position)}
