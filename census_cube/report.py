import json
from dataclasses import asdict
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from jinja2 import Template

from .aggregation import Projection
from .ipf_solver import ErrorSample
from .marginal_builder import STATUS_CLEAN, MarginalSet, QualityReport

QUALITY_TEMPLATE = (
    "Data integrity: {{ status_text }}. "
    "Population anchor {{ '{:,}'.format(anchor) }} "
    "({{ 'largest reported total' if from_total else 'largest dimension sum' }}). "
    "Raw sums: nationality {{ '{:,}'.format(sums.nationality) }}, "
    "visa {{ '{:,}'.format(sums.visa) }}, age {{ '{:,}'.format(sums.age) }}"
    "{% if sums.gender %}, gender {{ '{:,}'.format(sums.gender) }}{% endif %}; "
    "max difference {{ '{:,}'.format(max_diff) }} ({{ '%.2f'|format(rate) }}%)."
    "{% if corrected %} All marginals were rescaled to the anchor.{% endif %}"
    "{% if missing %} No data for: {{ missing|join(', ') }}.{% endif %}"
    "{% if prior %} Prior period {{ prior }} available for seeding.{% else %} No prior period data.{% endif %}"
)

STATUS_TEXT = {
    'clean': 'matched',
    'warning': 'minor discrepancy, corrected',
    'error': 'discrepancy, corrected',
}


def quality_summary(report: QualityReport, template: str = QUALITY_TEMPLATE) -> str:
    """Render a one-paragraph text summary of a quality report."""
    context = {
        'status_text': STATUS_TEXT.get(report.status, report.status),
        'anchor': report.anchor,
        'from_total': report.anchor_from_total_row,
        'sums': report.raw_sums,
        'max_diff': report.max_absolute_diff,
        'rate': report.discrepancy_rate_percent,
        'corrected': report.status != STATUS_CLEAN and report.anchor > 0,
        'missing': report.missing_dimensions,
        'prior': report.prior_period_key,
    }
    return Template(template).render(**context)


# Convert numpy types to Python native types for JSON serialization
def convert_numpy_types(obj):
    if isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.floating):
        return float(obj)
    elif isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, np.bool_):
        return bool(obj)
    elif isinstance(obj, pd.DataFrame):
        return obj.to_dict(orient='index')
    elif isinstance(obj, pd.Series):
        return obj.to_dict()
    elif isinstance(obj, dict):
        return {str(getattr(key, 'value', key)): convert_numpy_types(value) for key, value in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [convert_numpy_types(item) for item in obj]
    return obj


def projection_to_dict(projection: Projection) -> Dict[str, Any]:
    tables = {}
    for (row_dim, col_dim), table in projection.tables.items():
        tables[f"{row_dim}_x_{col_dim}"] = {
            'rows': table.rows,
            'columns': table.columns,
            'values': [[table.get(r, c) for c in table.columns] for r in table.rows],
            'intervals': [
                {'row': r, 'column': c, 'lower': lo, 'upper': hi}
                for (r, c), (lo, hi) in table.intervals.items()
            ],
        }
    return {'labels': projection.labels, 'folded': projection.folded, 'tables': tables}


def build_result_document(report: QualityReport, marginals: MarginalSet,
                          history: List[ErrorSample],
                          projection: Optional[Projection]) -> Dict[str, Any]:
    """Plain-data summary of one run, safe for json.dumps."""
    document = {
        'quality': asdict(report),
        'summary': quality_summary(report),
        'marginals': {
            'anchor': marginals.anchor,
            'nationality': marginals.nationality,
            'visa': marginals.visa,
            'age': marginals.age,
            'gender': marginals.gender,
        },
        'error_history': [asdict(s) for s in history],
        'projection': projection_to_dict(projection) if projection is not None else None,
    }
    return convert_numpy_types(document)


def to_json(document: Dict[str, Any]) -> str:
    return json.dumps(document, ensure_ascii=False, indent=2)
