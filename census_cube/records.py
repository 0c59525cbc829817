"""
Classified records and the append-only record store.

A ClassifiedRecord is one reported row of a marginal tally: one category of
one dimension, for one (period, region), optionally split by gender. Rows
that carry a reported total or subtotal instead of a leaf category are
flagged with ``is_aggregate``.
"""

import logging
import math
import numbers
import re
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

import pandas as pd

logger = logging.getLogger(__name__)


class DimensionKind(Enum):
    NATIONALITY = "nationality"
    VISA = "visa"
    AGE = "age"


class Gender(Enum):
    MALE = "male"
    FEMALE = "female"
    AGGREGATE = "aggregate"


# Both concrete genders, in cube order
GENDERS = [Gender.MALE, Gender.FEMALE]

AGGREGATE_LABELS = {'합계', '소계', '총계', '계', '전체'}
AGGREGATE_LABELS_LATIN = {'total', 'subtotal', 'all'}


@dataclass(frozen=True)
class ClassifiedRecord:
    period: str
    region: str
    dimension: DimensionKind
    label: str
    gender: Gender
    count: int
    is_aggregate: bool


def is_aggregate_label(label: str) -> bool:
    """True if the category label marks a reported total or subtotal row."""
    text = str(label).strip()
    return text in AGGREGATE_LABELS or text.lower() in AGGREGATE_LABELS_LATIN


def classify_gender(text: Optional[str]) -> Gender:
    """Map free-form gender text to a Gender; anything unrecognized is the aggregate."""
    if text is None:
        return Gender.AGGREGATE
    s = str(text).strip()
    if not s:
        return Gender.AGGREGATE
    if '남' in s or s.lower() == 'male':
        return Gender.MALE
    if '여' in s or s.lower() == 'female':
        return Gender.FEMALE
    return Gender.AGGREGATE


def parse_count(value) -> Optional[int]:
    """Parse a reported count ("1,234", 1234, "1234.0"). Returns None if unparseable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, numbers.Integral):
        return int(value)
    if isinstance(value, numbers.Real):
        return int(value) if math.isfinite(value) else None
    match = re.match(r'^-?\d+', str(value).replace(',', '').strip())
    if not match:
        return None
    return int(match.group(0))


def classify_row(period: str, region: str, dimension, label: str,
                 gender_text: Optional[str], count) -> Optional[ClassifiedRecord]:
    """
    Build a ClassifiedRecord from already-extracted row fields.

    Args:
        period: Reporting period, e.g. '2023'
        region: Region / district name
        dimension: DimensionKind or its string value
        label: Category label as reported
        gender_text: Raw gender cell, or None if the source has no gender column
        count: Raw count cell

    Returns:
        The classified record, or None if the count cannot be parsed or is negative
    """
    parsed = parse_count(count)
    if parsed is None or parsed < 0:
        return None
    label = str(label).strip()
    return ClassifiedRecord(
        period=str(period).strip(),
        region=str(region).strip(),
        dimension=DimensionKind(dimension),
        label=label,
        gender=classify_gender(gender_text),
        count=parsed,
        is_aggregate=is_aggregate_label(label),
    )


def previous_period(period: str) -> Optional[str]:
    """The immediately preceding period key ('2023' -> '2022'), or None if not numeric."""
    match = re.match(r'^\s*(\d+)', str(period))
    if not match:
        return None
    return str(int(match.group(1)) - 1)


class RecordStore:
    """
    Append-only accumulation of classified records across ingestion calls.

    Everything derived from the store depends only on the multiset of records,
    never on the order in which batches were appended.
    """

    def __init__(self, records: Optional[Iterable[ClassifiedRecord]] = None):
        self._records: List[ClassifiedRecord] = []
        if records:
            self.extend(records)

    def extend(self, records: Iterable[ClassifiedRecord]) -> int:
        batch = [r for r in records if r is not None]
        self._records.extend(batch)
        logger.info(f"Ingested {len(batch)} records (total: {len(self._records)})")
        return len(batch)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(self._records)

    @property
    def records(self) -> List[ClassifiedRecord]:
        return list(self._records)

    def select(self, period: str, region: str) -> List[ClassifiedRecord]:
        return [r for r in self._records if r.period == period and r.region == region]

    def has_selection(self, period: Optional[str], region: str) -> bool:
        if period is None:
            return False
        return any(r.period == period and r.region == region for r in self._records)

    def periods(self) -> List[str]:
        """Distinct periods, most recent first."""
        return sorted({r.period for r in self._records}, reverse=True)

    def regions(self) -> List[str]:
        return sorted({r.region for r in self._records})

    def fingerprint(self) -> Counter:
        """Multiset view of the store, independent of append order."""
        return Counter(self._records)

    def to_frame(self) -> pd.DataFrame:
        """Flat DataFrame of all records with enum fields as their string values."""
        columns = ['period', 'region', 'dimension', 'label', 'gender', 'count', 'is_aggregate']
        rows = [
            {
                'period': r.period,
                'region': r.region,
                'dimension': r.dimension.value,
                'label': r.label,
                'gender': r.gender.value,
                'count': r.count,
                'is_aggregate': r.is_aggregate,
            }
            for r in self._records
        ]
        return pd.DataFrame(rows, columns=columns)
