"""Demographic warning ranges for the heart rate.

The table file is JSON validated with pydantic::

    {"rates": [{"sex": "male", "age_from": 18, "age_to": 29,
                "confidence": "five_percents", "low": 52, "high": 96}]}

Loading never raises: it reports a :class:`WarningTableStatus`.
"""

from __future__ import annotations

import enum
import json
import logging
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)


class Sex(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"


class ConfidenceLevel(str, enum.Enum):
    """Two-sided alpha of the reference interval."""

    FIFTY_PERCENTS = "fifty_percents"
    TWENTY_PERCENTS = "twenty_percents"
    TEN_PERCENTS = "ten_percents"
    FIVE_PERCENTS = "five_percents"
    TWO_PERCENTS = "two_percents"


class WarningTableStatus(enum.IntEnum):
    SUCCESS = 0
    FILE_OPEN_ERROR = 1
    FILE_EXISTENCE_ERROR = 2
    READ_ERROR = 3
    PARSE_FAILURE = 4


class RateRecord(BaseModel):
    sex: Sex
    age_from: int = Field(ge=0)
    age_to: int = Field(ge=0)
    confidence: ConfidenceLevel
    low: float = Field(ge=0.0)
    high: float = Field(gt=0.0)

    @model_validator(mode="after")
    def _check_order(self) -> "RateRecord":
        if self.age_to < self.age_from:
            raise ValueError("age_to must be >= age_from")
        if self.high <= self.low:
            raise ValueError("high must be > low")
        return self


class WarningRangeTable(BaseModel):
    rates: list[RateRecord]

    def lookup(self, sex: Sex, age: int, confidence: ConfidenceLevel) -> Optional[Tuple[float, float]]:
        for r in self.rates:
            if r.sex == sex and r.confidence == confidence and r.age_from <= age <= r.age_to:
                return r.low, r.high
        return None


def load_warning_table(path: str | Path) -> Tuple[WarningTableStatus, Optional[WarningRangeTable]]:
    p = Path(path)
    if not p.exists():
        return WarningTableStatus.FILE_EXISTENCE_ERROR, None
    try:
        f = p.open("rb")
    except OSError:
        logger.warning("cannot open warning table %s", p, exc_info=True)
        return WarningTableStatus.FILE_OPEN_ERROR, None
    try:
        with f:
            text = f.read().decode("utf-8")
    except (OSError, UnicodeDecodeError):
        logger.warning("cannot read warning table %s", p, exc_info=True)
        return WarningTableStatus.READ_ERROR, None
    try:
        table = WarningRangeTable.model_validate(json.loads(text))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning("malformed warning table %s: %s", p, e)
        return WarningTableStatus.PARSE_FAILURE, None
    return WarningTableStatus.SUCCESS, table


class WarningEngine:
    """Holds the active table and demographic; checks rates against them."""

    def __init__(self) -> None:
        self.table: Optional[WarningRangeTable] = None
        self.sex = Sex.MALE
        self.age = 0
        self.confidence = ConfidenceLevel.FIVE_PERCENTS

    def load(
        self,
        path: str | Path,
        sex: Sex,
        age: int,
        confidence: ConfidenceLevel,
    ) -> WarningTableStatus:
        """Replace table and demographic; both stay untouched on failure."""
        sex = Sex(sex)
        confidence = ConfidenceLevel(confidence)
        status, table = load_warning_table(path)
        if status is not WarningTableStatus.SUCCESS:
            return status
        self.table = table
        self.sex, self.age, self.confidence = sex, int(age), confidence
        logger.info("warning table loaded from %s (%d rows)", path, len(table.rates))
        return status

    def thresholds(self) -> Optional[Tuple[float, float]]:
        if self.table is None:
            return None
        return self.table.lookup(self.sex, self.age, self.confidence)

    def check(self, rate: float) -> Optional[Tuple[float, float]]:
        """Return ``(low, high)`` when ``rate`` is out of range, else None."""
        th = self.thresholds()
        if th is None:
            return None
        low, high = th
        if rate < low or rate > high:
            return th
        return None
