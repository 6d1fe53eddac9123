"""
Shared schema types.
"""

import math
from datetime import datetime

from pydantic import AfterValidator, BeforeValidator, ValidationError, WrapValidator
from typing import Annotated, Optional

from backend.app.core.timeutils import as_utc


# SQLite hands back naive datetimes; responses always carry UTC offsets.
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


def round_km(value):
    """Distances are kept in full precision and rounded only for display."""
    return round(value, 2) if value is not None else None


def _float_or_none(value):
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _int_or_none(value):
    number = _float_or_none(value)
    return int(round(number)) if number is not None else None


def _flag(value):
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _datetime_or_none(value, handler):
    try:
        return handler(value)
    except ValidationError:
        return None


# Device payloads: anything unparsable becomes None instead of a 422.
LenientFloat = Annotated[Optional[float], BeforeValidator(_float_or_none)]
LenientInt = Annotated[Optional[int], BeforeValidator(_int_or_none)]
LenientFlag = Annotated[bool, BeforeValidator(_flag)]
LenientDatetime = Annotated[Optional[datetime], WrapValidator(_datetime_or_none)]
