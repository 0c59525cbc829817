"""
CSV ingestion for published marginal tallies.

Each file reports one dimension (nationality, visa or age) per region,
optionally split by gender, in either of two layouts:

    long:  one period column (시점/년도/year), count in the last column
    wide:  one column per period, headers starting with a 4-digit year

The header row is located within the first lines by a region keyword. Files
are tried as UTF-8 first and EUC-KR second. Files that cannot be recognized
are skipped with a warning rather than failing the batch.
"""

import io
import logging
import re
from typing import Iterable, List, Optional

import pandas as pd

from .records import ClassifiedRecord, DimensionKind, classify_row

logger = logging.getLogger(__name__)

HEADER_SCAN_LINES = 10
ENCODINGS = ('utf-8', 'euc-kr')

REGION_KEYS = ['행정구역', '시군구', 'District', 'Region']
DIMENSION_KEYS = [
    (DimensionKind.NATIONALITY, ['국적', '지역', 'Nationality']),
    (DimensionKind.VISA, ['체류자격', 'Visa']),
    (DimensionKind.AGE, ['연령', 'Age']),
]
GENDER_KEYS = ['성별', 'Sex', 'Gender']
PERIOD_KEYS = ['시점', '년도', 'year', 'Year']

_YEAR_HEADER = re.compile(r'^\d{4}')


def _find_column(columns: List[str], keys: List[str]) -> Optional[str]:
    for column in columns:
        if any(k in column for k in keys):
            return column
    return None


def _header_index(lines: List[str]) -> int:
    for i, line in enumerate(lines[:HEADER_SCAN_LINES]):
        if any(k in line for k in REGION_KEYS):
            return i
    return -1


def read_table(path: str) -> Optional[pd.DataFrame]:
    """
    Read a CSV file into a string-typed DataFrame starting at its detected header row.

    Returns:
        DataFrame, or None if no header row was found under any supported encoding
    """
    for encoding in ENCODINGS:
        try:
            with open(path, 'r', encoding=encoding) as f:
                text = f.read()
        except UnicodeDecodeError:
            continue
        lines = [line for line in text.splitlines() if line.strip()]
        header_idx = _header_index(lines)
        if header_idx == -1:
            continue
        frame = pd.read_csv(io.StringIO('\n'.join(lines[header_idx:])), dtype=str,
                            keep_default_na=False, skipinitialspace=True)
        frame.columns = [str(c).strip() for c in frame.columns]
        return frame
    return None


def records_from_frame(frame: pd.DataFrame) -> List[ClassifiedRecord]:
    """
    Classify the rows of one table.

    Returns:
        Classified records; empty if the table has no region or dimension column
    """
    columns = list(frame.columns)
    region_col = _find_column(columns, REGION_KEYS)
    if region_col is None:
        return []

    dimension = None
    category_col = None
    for kind, keys in DIMENSION_KEYS:
        category_col = _find_column([c for c in columns if c != region_col], keys)
        if category_col is not None:
            dimension = kind
            break
    if dimension is None:
        return []

    gender_col = _find_column(columns, GENDER_KEYS)
    period_col = _find_column(columns, PERIOD_KEYS)
    year_cols = [] if period_col is not None else [c for c in columns if _YEAR_HEADER.match(c)]
    count_col = columns[-1]

    records: List[ClassifiedRecord] = []
    for _, row in frame.iterrows():
        region = row[region_col]
        label = row[category_col]
        gender_text = row[gender_col] if gender_col is not None else None
        if period_col is not None:
            candidates = [(row[period_col], row[count_col])]
        else:
            candidates = [(c[:4], row[c]) for c in year_cols]
        for period, count in candidates:
            record = classify_row(period, region, dimension, label, gender_text, count)
            if record is not None:
                records.append(record)
    return records


def read_records(paths: Iterable[str]) -> List[ClassifiedRecord]:
    """
    Read and classify a batch of CSV files.

    Args:
        paths: CSV file paths

    Returns:
        All classified records of the recognized files
    """
    records: List[ClassifiedRecord] = []
    loaded = 0
    for path in paths:
        frame = read_table(path)
        if frame is None:
            logger.warning(f"Skipping {path}: no header row found")
            continue
        file_records = records_from_frame(frame)
        if not file_records:
            logger.warning(f"Skipping {path}: no region/dimension columns recognized")
            continue
        records.extend(file_records)
        loaded += 1
        logger.info(f"Loaded {len(file_records)} records from {path}")
    logger.info(f"{loaded} files loaded, {len(records)} records")
    return records
