from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class PositionCreate(BaseModel):
    """
    Body of POST /api/positions.

    Fields accept any JSON value: the service reads non-strings as empty, validates
    in a fixed order and reports the first failure with its own error code.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    symbol: Any = None
    name: Any = None
    category: Any = None
    position_type: Any = None
    purchase_price: Any = None
    current_price: Any = None
    return_value: Any = None
    quote_symbol: Any = None
    position_currency: Any = None

    position_size_type: Any = None
    position_size_value: Any = None
    position_size_label: Any = None
    position_size_per_pip_label: Any = None

    # raw camelCase object, see services.position_analysis_service.normalize_analysis
    analysis: Any = None


class PositionUpdate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: Any = None
    category: Any = None
    position_type: Any = None
    quote_symbol: Any = None
