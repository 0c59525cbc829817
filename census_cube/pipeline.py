"""
Reconciliation pipeline.

Owns the accumulated records, the active (period, region) selection, the
current marginals and the cube being solved. Any change of selection, of the
prior-seed toggle, or of the record set rebuilds marginals and replaces the
whole cube and solver at once; the previous cube is never partially reused.
"""

import logging
from typing import Callable, Iterable, List, Optional

import pandas as pd

from .aggregation import DisplayOptions, Projection, gender_split, project, top_marginals
from .config import EngineSettings
from .ipf_solver import Cube, ErrorSample, IPFSolver, SolverState, targets_from_marginals
from .marginal_builder import MarginalResult, MarginalSet, QualityReport, build_marginals, population_trend
from .records import ClassifiedRecord, RecordStore
from .seed_constructor import WeightRule, build_seed_for_selection

logger = logging.getLogger(__name__)


class ReconciliationPipeline:
    """
    Marginal building, seeding, stepwise solving and projection for one selection.

    Args:
        settings: Engine settings; defaults to EngineSettings()
        rules: Optional seed weight rules replacing the defaults
    """

    def __init__(self, settings: Optional[EngineSettings] = None,
                 rules: Optional[List[WeightRule]] = None):
        self.settings = settings or EngineSettings()
        self.rules = rules
        self.store = RecordStore()
        self.period: Optional[str] = None
        self.region: Optional[str] = None
        self.use_prior_seed = self.settings.use_prior_seed
        self.result: Optional[MarginalResult] = None
        self.solver: Optional[IPFSolver] = None

    # ---- inputs ----

    def ingest(self, records: Iterable[ClassifiedRecord]) -> int:
        """Append a batch of records; defaults the selection to the latest period and first region."""
        added = self.store.extend(records)
        if self.period is None and self.store.periods():
            self.period = self.store.periods()[0]
        if self.region is None and self.store.regions():
            self.region = self.store.regions()[0]
        self._rebuild()
        return added

    def select(self, period: str, region: str) -> None:
        self.period = period
        self.region = region
        self._rebuild()

    def set_use_prior_seed(self, enabled: bool) -> None:
        if enabled != self.use_prior_seed:
            self.use_prior_seed = enabled
            self._rebuild()

    def _rebuild(self) -> None:
        if self.period is None or self.region is None:
            self.result = None
            self.solver = None
            return
        records = self.store.records
        result = build_marginals(records, self.period, self.region,
                                 gender_split=self.settings.gender_split)
        marginals = result.marginals
        cube = build_seed_for_selection(
            records, self.period, self.region,
            marginals.nationalities, marginals.visas,
            use_prior_seed=self.use_prior_seed,
            rules=self.rules,
            params=self.settings.seed,
        )
        solver = IPFSolver(
            cube,
            targets_from_marginals(marginals),
            anchor=marginals.anchor,
            history_window=self.settings.solver.history_window,
            tolerance=self.settings.solver.tolerance,
        )
        if self.solver is not None:
            self.solver.cancel()
        self.result = result
        self.solver = solver
        logger.info(f"Reseeded {self.period}/{self.region} "
                    f"(prior seed {'on' if self.use_prior_seed else 'off'}): {len(cube)} cells")

    # ---- state ----

    @property
    def marginals(self) -> MarginalSet:
        return self.result.marginals if self.result is not None else MarginalSet()

    @property
    def report(self) -> Optional[QualityReport]:
        return self.result.report if self.result is not None else None

    @property
    def cube(self) -> Cube:
        return self.solver.cube if self.solver is not None else Cube()

    @property
    def error_history(self) -> List[ErrorSample]:
        return self.solver.error_history if self.solver is not None else []

    @property
    def iterations(self) -> int:
        return self.solver.iterations if self.solver is not None else 0

    @property
    def prior_seed_active(self) -> bool:
        """True when the current cube was blended with prior-period data."""
        return bool(self.use_prior_seed and self.report is not None and self.report.prior_period_available)

    # ---- solving ----

    def step(self) -> Optional[ErrorSample]:
        if self.solver is None:
            return None
        return self.solver.step()

    def run(self, max_passes: Optional[int] = None, delay: Optional[float] = None,
            on_sample: Optional[Callable[[ErrorSample], None]] = None) -> SolverState:
        """
        Bounded auto-run from a fresh pass counter.

        Args:
            max_passes: Pass budget; defaults to the configured budget
            delay: Seconds between passes; defaults to the configured delay
            on_sample: Observer called with each ErrorSample

        Returns:
            Final solver state (IDLE when there is no active selection)
        """
        if self.solver is None or len(self.solver.cube) == 0:
            logger.info("Nothing to solve: no active categories for the current selection")
            return SolverState.IDLE
        settings = self.settings.solver
        return self.solver.auto_run(
            max_passes=settings.max_passes if max_passes is None else max_passes,
            delay=settings.step_delay_seconds if delay is None else delay,
            on_sample=on_sample,
        )

    def cancel(self) -> None:
        if self.solver is not None:
            self.solver.cancel()

    # ---- outputs ----

    def project(self, options: Optional[DisplayOptions] = None) -> Projection:
        return project(self.cube, options or self.settings.display)

    def gender_split(self):
        return gender_split(self.cube)

    def top_marginals(self, dimension: str, n: int = 5):
        return top_marginals(self.marginals.for_dimension(dimension), n)

    def trend(self) -> pd.DataFrame:
        if self.region is None:
            return pd.DataFrame(columns=['period', 'total'])
        return population_trend(self.store, self.region)
