from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Iterable, Union

from pydantic import BaseModel, ConfigDict, StrictBool, StrictFloat, StrictInt, StrictStr

from .asset import AssetType

FilterValue = Union[StrictBool, StrictInt, StrictFloat, datetime, StrictStr]


class Comparison(str, Enum):
    EQUAL = "equal"
    LESS_THAN = "less_than"
    GREATER_THAN = "greater_than"
    CONTAINS = "contains"


class QueryFilter(BaseModel):
    """A single ``field <comparison> value`` predicate over asset records.

    A list of filters is combined with OR by the asset database.
    """

    model_config = ConfigDict(frozen=True)

    field: str
    value: FilterValue
    comparison: Comparison = Comparison.EQUAL


def type_filters(types: Iterable[AssetType] | None) -> list[QueryFilter] | None:
    """Equality filters on ``type``, one per asset type; ``None`` means no restriction."""

    if types is None:
        return None
    return [QueryFilter(field="type", value=asset_type.value) for asset_type in types]
