"""
Aggregation Engine

Read-only projection of a converged Cube onto display granularities:

    1. Map raw labels to display buckets per dimension.
    2. Sum the cube per bucket to get one-dimensional aggregates.
    3. Fold buckets below the per-dimension threshold into "Other".
    4. Cross-tabulate nationality x visa, nationality x age, visa x age,
       optionally for one gender only.
    5. Append "Total" rows/columns and the grand total.
    6. Attach normal-approximation confidence intervals to displayed cells.

Projecting never mutates the cube, and identical inputs give identical output.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import pandas as pd

from .category_mapper import FINE, MEDIUM, map_age, map_nationality, map_visa
from .ipf_solver import Cube, gender_totals
from .records import Gender, is_aggregate_label

logger = logging.getLogger(__name__)

OTHER_LABEL = 'Other'
TOTAL_LABEL = 'Total'
RESERVED_LABELS = (OTHER_LABEL, TOTAL_LABEL)

Z_SCORES: Dict[float, float] = {
    0.90: 1.645,
    0.95: 1.96,
    0.99: 2.576,
    0.995: 2.807,
}

DIMENSIONS = ('nationality', 'visa', 'age')
PAIRS = (('nationality', 'visa'), ('nationality', 'age'), ('visa', 'age'))


def z_for_level(level: float) -> float:
    for supported, z in Z_SCORES.items():
        if math.isclose(level, supported):
            return z
    raise ValueError(f"Unsupported confidence level: {level}. Expected one of {sorted(Z_SCORES)}")


def confidence_interval(value: float, level: float) -> Optional[Tuple[int, int]]:
    """
    Normal-approximation interval for an estimated count.

    The standard error is sqrt(value). The lower bound is rounded up and
    clamped at 0; the upper bound is rounded half-up. A value of 100 at 95%
    gives (81, 120).

    Returns:
        (lower, upper), or None for non-positive values
    """
    if value <= 0:
        return None
    half_width = z_for_level(level) * math.sqrt(value)
    lower = max(0, math.ceil(value - half_width))
    upper = int(math.floor(value + half_width + 0.5))
    return lower, upper


@dataclass
class DisplayOptions:
    levels: Dict[str, str] = field(default_factory=lambda: {
        'nationality': FINE, 'visa': FINE, 'age': MEDIUM})
    thresholds: Dict[str, int] = field(default_factory=lambda: {
        'nationality': 50, 'visa': 50, 'age': 0})
    confidence_level: Optional[float] = 0.95
    gender: Optional[Gender] = None


class CrossTab:
    """
    2-D table keyed by (row bucket, column bucket) with get-or-zero lookups.

    ``rows`` and ``columns`` are display order and end with TOTAL_LABEL once
    totals have been added.
    """

    def __init__(self, row_dimension: str, column_dimension: str,
                 rows: List[str], columns: List[str]):
        self.row_dimension = row_dimension
        self.column_dimension = column_dimension
        self.rows = list(rows)
        self.columns = list(columns)
        self.values: Dict[Tuple[str, str], float] = {}
        self.intervals: Dict[Tuple[str, str], Tuple[int, int]] = {}

    def get(self, row: str, column: str) -> float:
        return self.values.get((row, column), 0.0)

    def add(self, row: str, column: str, value: float) -> None:
        self.values[(row, column)] = self.get(row, column) + value

    def interval(self, row: str, column: str) -> Optional[Tuple[int, int]]:
        return self.intervals.get((row, column))

    @property
    def grand_total(self) -> float:
        return self.get(TOTAL_LABEL, TOTAL_LABEL)

    def add_totals(self) -> None:
        body_rows = [r for r in self.rows if r != TOTAL_LABEL]
        body_cols = [c for c in self.columns if c != TOTAL_LABEL]
        for r in body_rows:
            self.values[(r, TOTAL_LABEL)] = sum(self.get(r, c) for c in body_cols)
        for c in body_cols:
            self.values[(TOTAL_LABEL, c)] = sum(self.get(r, c) for r in body_rows)
        self.values[(TOTAL_LABEL, TOTAL_LABEL)] = sum(self.get(r, TOTAL_LABEL) for r in body_rows)
        self.rows = body_rows + [TOTAL_LABEL]
        self.columns = body_cols + [TOTAL_LABEL]

    def add_intervals(self, level: float) -> None:
        for r in self.rows:
            if r == TOTAL_LABEL:
                continue
            for c in self.columns:
                if c == TOTAL_LABEL:
                    continue
                ci = confidence_interval(self.get(r, c), level)
                if ci is not None:
                    self.intervals[(r, c)] = ci

    def to_frame(self) -> pd.DataFrame:
        """Dense DataFrame (rows x columns) including totals and zeros."""
        data = [[self.get(r, c) for c in self.columns] for r in self.rows]
        return pd.DataFrame(data, index=pd.Index(self.rows, name=self.row_dimension),
                            columns=pd.Index(self.columns, name=self.column_dimension))


@dataclass
class Projection:
    labels: Dict[str, List[str]]
    aggregates: Dict[str, Dict[str, float]]
    folded: Dict[str, List[str]]
    tables: Dict[Tuple[str, str], CrossTab]

    def table(self, row_dimension: str, column_dimension: str) -> CrossTab:
        return self.tables[(row_dimension, column_dimension)]


def _bucket_mapping(cube: Cube, levels: Dict[str, str]) -> Dict[str, Dict[str, str]]:
    return {
        'nationality': {n: map_nationality(n, levels['nationality'])
                        for n in cube.categories('nationality')},
        'visa': {v: map_visa(v, levels['visa']) for v in cube.categories('visa')},
        'age': {a: map_age(a, levels['age']) for a in cube.categories('age')},
    }


def _display_list(dimension: str, aggregate: Dict[str, float], threshold: float) -> Tuple[List[str], List[str]]:
    # Raw buckets named like the synthetic rows always fold, so display labels stay unique.
    kept = [b for b in aggregate if aggregate[b] >= threshold and b not in RESERVED_LABELS]
    folded = sorted(b for b in aggregate if b not in kept)
    if dimension == 'age':
        kept = sorted(kept)
    else:
        kept = sorted(kept, key=lambda b: (-aggregate[b], b))
    return kept, folded


def project(cube: Cube, options: Optional[DisplayOptions] = None) -> Projection:
    """
    Project the cube onto display buckets.

    Args:
        cube: Converged (or in-progress) cube; read only
        options: Levels, thresholds, confidence level and gender filter

    Returns:
        Projection with display labels (ending in Other/Total), one-dimensional
        aggregates, folded buckets and the three cross-tabulations
    """
    options = options or DisplayOptions()
    if options.confidence_level is not None:
        z_for_level(options.confidence_level)
    mapping = _bucket_mapping(cube, options.levels)

    aggregates: Dict[str, Dict[str, float]] = {d: {} for d in DIMENSIONS}
    for key, value in cube.items():
        for position, dimension in enumerate(DIMENSIONS):
            bucket = mapping[dimension][key[position]]
            aggregates[dimension][bucket] = aggregates[dimension].get(bucket, 0.0) + value

    display: Dict[str, List[str]] = {}
    explicit: Dict[str, set] = {}
    folded: Dict[str, List[str]] = {}
    for dimension in DIMENSIONS:
        kept, dropped = _display_list(dimension, aggregates[dimension],
                                      options.thresholds.get(dimension, 0))
        explicit[dimension] = set(kept)
        folded[dimension] = dropped
        display[dimension] = kept + ([OTHER_LABEL] if dropped else [])
        if dropped:
            logger.debug(f"Folded {len(dropped)} {dimension} buckets into {OTHER_LABEL}: {dropped}")

    tables = {pair: CrossTab(pair[0], pair[1], display[pair[0]], display[pair[1]]) for pair in PAIRS}

    for key, value in cube.items():
        if options.gender is not None and key.gender != options.gender:
            continue
        buckets = {}
        for position, dimension in enumerate(DIMENSIONS):
            bucket = mapping[dimension][key[position]]
            buckets[dimension] = bucket if bucket in explicit[dimension] else OTHER_LABEL
        for row_dim, col_dim in PAIRS:
            tables[(row_dim, col_dim)].add(buckets[row_dim], buckets[col_dim], value)

    for table in tables.values():
        table.add_totals()
        if options.confidence_level is not None:
            table.add_intervals(options.confidence_level)

    labels = {d: display[d] + [TOTAL_LABEL] for d in DIMENSIONS}
    return Projection(labels=labels, aggregates=aggregates, folded=folded, tables=tables)


def gender_split(cube: Cube) -> Dict[str, int]:
    """Rounded male/female totals of the cube."""
    return {g.value: int(math.floor(v + 0.5)) for g, v in gender_totals(cube).items()}


def top_marginals(targets: Dict[str, int], n: int = 5) -> List[Tuple[str, int]]:
    """Largest n targets, skipping labels that look like totals."""
    items = [(label, value) for label, value in targets.items() if not is_aggregate_label(label)]
    items.sort(key=lambda item: (-item[1], str(item[0])))
    return items[:n]


def chart_rows(projection: Projection, row_dimension: str = 'nationality',
               column_dimension: str = 'visa') -> pd.DataFrame:
    """
    Rounded body of one cross-tab for bar charts: explicit rows only, no Other or Total rows.
    """
    table = projection.table(row_dimension, column_dimension)
    rows = [r for r in table.rows if r not in (OTHER_LABEL, TOTAL_LABEL)]
    columns = [c for c in table.columns if c != TOTAL_LABEL]
    data = [[int(math.floor(table.get(r, c) + 0.5)) for c in columns] for r in rows]
    return pd.DataFrame(data, index=pd.Index(rows, name=row_dimension), columns=columns)
