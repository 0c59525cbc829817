"""
census_cube: reconcile marginal population tallies into a joint distribution.

This package estimates a nationality x visa x age band x gender population
table from separately reported, possibly overlapping marginal tallies:
anchor-based marginal reconciliation, heuristic/historical seeding, iterative
proportional fitting, and re-aggregation at selectable granularities.
"""

__version__ = "0.1.0"

# Category mapping
from .category_mapper import (
    map_nationality,
    map_visa,
    map_age,
    classify_age_label,
    AGE_BANDS,
)

# Records and ingestion
from .records import (
    ClassifiedRecord,
    DimensionKind,
    Gender,
    RecordStore,
    classify_row,
)
from .ingest import read_records

# Reconciliation engine
from .marginal_builder import (
    MarginalSet,
    QualityReport,
    build_marginals,
    population_trend,
)
from .seed_constructor import (
    WeightRule,
    DEFAULT_RULES,
    build_seed,
)
from .ipf_solver import (
    Cube,
    CubeKey,
    ErrorSample,
    IPFSolver,
    SolverState,
)
from .aggregation import (
    CrossTab,
    DisplayOptions,
    Projection,
    project,
    confidence_interval,
)

# Configuration and orchestration
from .config import load_config, load_settings, EngineSettings
from .pipeline import ReconciliationPipeline
from .report import quality_summary

# Define what should be available in "from census_cube import *"
__all__ = [
    # Category mapping
    'map_nationality',
    'map_visa',
    'map_age',
    'classify_age_label',
    'AGE_BANDS',

    # Records
    'ClassifiedRecord',
    'DimensionKind',
    'Gender',
    'RecordStore',
    'classify_row',
    'read_records',

    # Engine
    'MarginalSet',
    'QualityReport',
    'build_marginals',
    'population_trend',
    'WeightRule',
    'DEFAULT_RULES',
    'build_seed',
    'Cube',
    'CubeKey',
    'ErrorSample',
    'IPFSolver',
    'SolverState',
    'CrossTab',
    'DisplayOptions',
    'Projection',
    'project',
    'confidence_interval',

    # Configuration
    'load_config',
    'load_settings',
    'EngineSettings',
    'ReconciliationPipeline',
    'quality_summary',
]
