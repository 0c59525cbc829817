"""
Marginal Builder

Turns the classified records of one (period, region) selection into target
marginal vectors for the solver, plus a data-quality report.

Reconciliation steps:
    1. Anchor: the single largest reported total (aggregate label, aggregate
       gender). Overlapping uploads repeat the same total, so taking the max
       instead of the sum keeps the population from being counted twice.
       Without any total row the anchor is the largest dimension sum.
    2. Raw marginals: detail rows summed per category for each dimension;
       gender taken from per-gender total rows (max per gender).
    3. Normalization: every dimension is rescaled to the anchor and rounded
       per category.
    4. Quality report: spread between the raw dimension sums.

Nothing here raises on bad or missing data; empty dimensions give all-zero
marginals, which the solver treats as unconstrained.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import pandas as pd

from .category_mapper import AGE_BANDS, classify_age_label
from .records import (
    GENDERS,
    ClassifiedRecord,
    DimensionKind,
    Gender,
    previous_period,
)

logger = logging.getLogger(__name__)

STATUS_CLEAN = 'clean'
STATUS_WARNING = 'warning'
STATUS_ERROR = 'error'

DEFAULT_GENDER_SPLIT: Dict[Gender, float] = {Gender.MALE: 0.52, Gender.FEMALE: 0.48}


def round_half_up(x: float) -> int:
    """Round to nearest integer with halves going up (2.5 -> 3)."""
    return int(math.floor(x + 0.5))


@dataclass
class MarginalSet:
    """Normalized target marginals for one (period, region)."""
    nationality: Dict[str, int] = field(default_factory=dict)
    visa: Dict[str, int] = field(default_factory=dict)
    age: Dict[str, int] = field(default_factory=lambda: {a: 0 for a in AGE_BANDS})
    gender: Dict[Gender, int] = field(default_factory=lambda: {g: 0 for g in GENDERS})
    anchor: int = 0

    @property
    def nationalities(self) -> List[str]:
        return list(self.nationality.keys())

    @property
    def visas(self) -> List[str]:
        return list(self.visa.keys())

    def for_dimension(self, dimension: str) -> Dict:
        if dimension not in ('nationality', 'visa', 'age', 'gender'):
            raise ValueError(f"Unknown dimension: {dimension}")
        return getattr(self, dimension)

    def to_frame(self) -> pd.DataFrame:
        """Long-format view: one row per (dimension, category) target."""
        rows = []
        for dimension in ('nationality', 'visa', 'age'):
            for label, target in self.for_dimension(dimension).items():
                rows.append({'dimension': dimension, 'category': label, 'target': target})
        for gender, target in self.gender.items():
            rows.append({'dimension': 'gender', 'category': gender.value, 'target': target})
        return pd.DataFrame(rows, columns=['dimension', 'category', 'target'])


@dataclass
class QualityReport:
    raw_sums: Dict[str, int]
    anchor: int
    max_absolute_diff: int
    discrepancy_rate_percent: float
    status: str
    prior_period_available: bool
    prior_period_key: Optional[str]
    anchor_from_total_row: bool = True
    missing_dimensions: List[str] = field(default_factory=list)

    @property
    def corrected(self) -> bool:
        """True when marginals were rescaled away from their raw sums."""
        return self.status != STATUS_CLEAN


@dataclass
class MarginalResult:
    marginals: MarginalSet
    report: QualityReport


def classify_discrepancy(rate_percent: float) -> str:
    """Status badge for a discrepancy rate: 0 -> clean, <1 -> warning, else error."""
    if rate_percent == 0:
        return STATUS_CLEAN
    if rate_percent < 1:
        return STATUS_WARNING
    return STATUS_ERROR


def select_anchor(records: Iterable[ClassifiedRecord]) -> int:
    """Largest single reported total among aggregate rows with aggregate gender (0 if none)."""
    anchor = 0
    for r in records:
        if r.is_aggregate and r.gender == Gender.AGGREGATE and r.count > anchor:
            anchor = r.count
    return anchor


def normalize_counts(counts: Dict, current_sum: float, target_sum: float) -> Dict:
    """
    Rescale counts so they sum (up to rounding) to target_sum.

    Returns a new dict; a zero current_sum leaves counts unchanged.
    """
    if current_sum == 0:
        return dict(counts)
    ratio = target_sum / current_sum
    return {k: round_half_up(v * ratio) for k, v in counts.items()}


def _raw_marginals(records: List[ClassifiedRecord]):
    nationality: Dict[str, int] = {}
    visa: Dict[str, int] = {}
    age: Dict[str, int] = {a: 0 for a in AGE_BANDS}
    gender: Dict[Gender, int] = {g: 0 for g in GENDERS}
    has_total_gender = False

    # Category universe: every distinct detail label, regardless of gender
    for label in sorted({r.label for r in records
                         if not r.is_aggregate and r.dimension == DimensionKind.NATIONALITY}):
        nationality[label] = 0
    for label in sorted({r.label for r in records
                         if not r.is_aggregate and r.dimension == DimensionKind.VISA}):
        visa[label] = 0

    for r in records:
        if r.is_aggregate and r.gender != Gender.AGGREGATE:
            gender[r.gender] = max(gender[r.gender], r.count)
            if r.count > 0:
                has_total_gender = True
        elif not r.is_aggregate and r.gender == Gender.AGGREGATE:
            if r.dimension == DimensionKind.NATIONALITY:
                nationality[r.label] += r.count
            elif r.dimension == DimensionKind.VISA:
                visa[r.label] += r.count
            else:
                band = classify_age_label(r.label)
                if band is None:
                    logger.debug(f"Unclassifiable age label skipped: {r.label!r}")
                    continue
                age[band] += r.count

    return nationality, visa, age, gender, has_total_gender


def build_marginals(records: Iterable[ClassifiedRecord], period: str, region: str,
                    gender_split: Optional[Dict[Gender, float]] = None) -> MarginalResult:
    """
    Build normalized marginals and the quality report for one selection.

    Args:
        records: Full accumulated record set (all periods and regions)
        period: Selected period
        region: Selected region
        gender_split: Default male/female shares used when no gender totals exist

    Returns:
        MarginalResult with the MarginalSet and QualityReport
    """
    all_records = list(records)
    split = gender_split or DEFAULT_GENDER_SPLIT
    selected = [r for r in all_records if r.period == period and r.region == region]

    prior_key = previous_period(period)
    has_prior = prior_key is not None and any(
        r.period == prior_key and r.region == region for r in all_records
    )

    nationality, visa, age, gender_raw, has_total_gender = _raw_marginals(selected)
    sum_nat = sum(nationality.values())
    sum_visa = sum(visa.values())
    sum_age = sum(age.values())
    sum_gender = sum(gender_raw.values())

    max_total = select_anchor(selected)
    anchor = max_total if max_total > 0 else max(sum_nat, sum_visa, sum_age)

    gender = dict(gender_raw)
    if anchor > 0:
        nationality = normalize_counts(nationality, sum_nat, anchor)
        visa = normalize_counts(visa, sum_visa, anchor)
        age = normalize_counts(age, sum_age, anchor)
        if not has_total_gender or sum_gender == 0:
            gender = {g: round_half_up(anchor * split[g]) for g in GENDERS}
        else:
            gender = normalize_counts(gender_raw, sum_gender, anchor)

    sums = [sum_nat, sum_visa, sum_age]
    if sum_gender > 0:
        sums.append(sum_gender)
    nonzero = [s for s in sums if s > 0]
    max_sum = max(sums)
    max_diff = max_sum - min(nonzero) if nonzero else 0
    rate = (max_diff / max_sum) * 100 if max_sum > 0 else 0.0

    status = classify_discrepancy(rate)
    if anchor == 0:
        status = STATUS_ERROR
    missing = [name for name, s in (('nationality', sum_nat), ('visa', sum_visa), ('age', sum_age))
               if s == 0]

    report = QualityReport(
        raw_sums={'nationality': sum_nat, 'visa': sum_visa, 'age': sum_age, 'gender': sum_gender},
        anchor=anchor,
        max_absolute_diff=max_diff,
        discrepancy_rate_percent=rate,
        status=status,
        prior_period_available=has_prior,
        prior_period_key=prior_key if has_prior else None,
        anchor_from_total_row=max_total > 0,
        missing_dimensions=missing,
    )
    marginals = MarginalSet(nationality=nationality, visa=visa, age=age, gender=gender, anchor=anchor)

    logger.info(f"Marginals for {period}/{region}: anchor={anchor} "
                f"({'total row' if max_total > 0 else 'max dimension sum'}), "
                f"discrepancy={rate:.2f}%, status={status}")
    if status == STATUS_ERROR:
        logger.warning(f"Inconsistent or missing marginals for {period}/{region}: "
                       f"raw sums {report.raw_sums}, missing={missing}")
    return MarginalResult(marginals=marginals, report=report)


def population_trend(records: Iterable[ClassifiedRecord], region: str) -> pd.DataFrame:
    """
    Estimated total population per period for one region.

    Uses the largest reported total row; falls back to the sum of visa detail
    rows when a period has no total.

    Returns:
        DataFrame with columns ['period', 'total'], oldest period first
    """
    by_period: Dict[str, List[ClassifiedRecord]] = {}
    for r in records:
        if r.region == region:
            by_period.setdefault(r.period, []).append(r)

    rows = []
    for period in sorted(by_period):
        period_records = by_period[period]
        total = select_anchor(period_records)
        if total == 0:
            total = sum(r.count for r in period_records
                        if r.dimension == DimensionKind.VISA and not r.is_aggregate
                        and r.gender == Gender.AGGREGATE)
        rows.append({'period': period, 'total': total})
    return pd.DataFrame(rows, columns=['period', 'total'])
