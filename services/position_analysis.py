from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from models.position import (
    ANALYSIS_ENTRY_STRATEGY_VALUES,
    ANALYSIS_TREND_VALUES,
    DEFAULT_ENTRY_STRATEGY,
    PositionAnalysis,
    PositionAnalysisOut,
)
from services.position_errors import PositionError

TARGET_KEYS = ("tp1", "tp2", "tp3")


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _optional_text(value: Any) -> Optional[str]:
    return _text(value) or None


def _timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    text = _text(value)
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def normalize_analysis(payload: Any) -> Dict[str, Any]:
    """
    Validate a camelCase analysis object and return PositionAnalysis column values.

    Trend, stop loss and summary are required. Notes and dates only survive when
    their completed/positionClosed flag is set. Unknown entry strategies fall back
    to "level".
    """
    if not isinstance(payload, dict):
        raise PositionError("INVALID_ANALYSIS", "Analysis payload is required")

    trend = _text(payload.get("trend")).lower()
    if trend not in ANALYSIS_TREND_VALUES:
        raise PositionError("INVALID_ANALYSIS_TREND", "Invalid analysis trend value", ANALYSIS_TREND_VALUES)

    stop_loss = _text(payload.get("stopLoss"))
    if not stop_loss:
        raise PositionError("INVALID_ANALYSIS_STOP_LOSS", "Analysis stop loss is required")

    summary = _text(payload.get("summary"))
    if not summary:
        raise PositionError("INVALID_ANALYSIS_SUMMARY", "Analysis summary is required")

    targets = payload.get("targets")
    targets = targets if isinstance(targets, dict) else {}

    completed = bool(payload.get("completed"))
    position_closed = bool(payload.get("positionClosed"))
    entry_strategy = _text(payload.get("entryStrategy"))

    return {
        "trend": trend,
        "target_tp1": _optional_text(targets.get("tp1")),
        "target_tp2": _optional_text(targets.get("tp2")),
        "target_tp3": _optional_text(targets.get("tp3")),
        "stop_loss": stop_loss,
        "summary": summary,
        "analysis_image": _optional_text(payload.get("analysisImage")),
        "completed": completed,
        "completion_note": _optional_text(payload.get("completionNote")) if completed else None,
        "completion_date": _timestamp(payload.get("completionDate")) if completed else None,
        "position_closed": position_closed,
        "position_closed_note": _optional_text(payload.get("positionClosedNote")) if position_closed else None,
        "position_closed_date": _timestamp(payload.get("positionClosedDate")) if position_closed else None,
        "entry_strategy": entry_strategy if entry_strategy in ANALYSIS_ENTRY_STRATEGY_VALUES else DEFAULT_ENTRY_STRATEGY,
    }


def analysis_to_dto(analysis: Optional[PositionAnalysis]) -> Optional[PositionAnalysisOut]:
    if analysis is None:
        return None
    targets = {
        key: value
        for key, value in zip(TARGET_KEYS, (analysis.target_tp1, analysis.target_tp2, analysis.target_tp3))
        if value
    }
    entry_strategy = analysis.entry_strategy
    if entry_strategy not in ANALYSIS_ENTRY_STRATEGY_VALUES:
        entry_strategy = DEFAULT_ENTRY_STRATEGY
    return PositionAnalysisOut(
        trend=analysis.trend,
        targets=targets,
        stop_loss=analysis.stop_loss or "",
        summary=analysis.summary or "",
        analysis_image=analysis.analysis_image,
        completed=bool(analysis.completed),
        completion_note=analysis.completion_note,
        completion_date=analysis.completion_date,
        position_closed=bool(analysis.position_closed),
        position_closed_note=analysis.position_closed_note,
        position_closed_date=analysis.position_closed_date,
        entry_strategy=entry_strategy,
    )
