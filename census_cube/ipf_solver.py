"""
IPF Solver

Iterative Proportional Fitting over the 4-way population cube
(nationality x visa x age band x gender).

One pass = four sweeps in fixed order (nationality, visa, age, gender). Each
sweep rescales, per category with a positive target, every cell of that
category so the category's sum hits its target. The pass error is the total
absolute miss across all sweeps relative to the anchor, in percent.

The solver never loops on its own: a driver calls step() once per pass, or
auto_run() for a bounded loop with an optional per-pass observer and
cooperative cancellation between passes.
"""

import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional

import numpy as np
import pandas as pd

from .records import GENDERS, Gender

logger = logging.getLogger(__name__)

SWEEP_ORDER = ('nationality', 'visa', 'age', 'gender')


class CubeKey(NamedTuple):
    nationality: str
    visa: str
    age_band: str
    gender: Gender


class Cube:
    """
    Sparse mapping CubeKey -> non-negative estimated count.

    The key set is fixed at construction; only values change afterwards.
    """

    def __init__(self, cells: Optional[Dict[CubeKey, float]] = None):
        self._cells: Dict[CubeKey, float] = dict(cells or {})
        self._index: Dict[str, Dict[object, List[CubeKey]]] = {}
        for position, dimension in enumerate(SWEEP_ORDER):
            groups: Dict[object, List[CubeKey]] = {}
            for key in self._cells:
                groups.setdefault(key[position], []).append(key)
            self._index[dimension] = groups

    def __len__(self) -> int:
        return len(self._cells)

    def __contains__(self, key) -> bool:
        return key in self._cells

    def __getitem__(self, key: CubeKey) -> float:
        return self._cells[key]

    def get(self, key: CubeKey, default: float = 0.0) -> float:
        return self._cells.get(key, default)

    def keys(self):
        return self._cells.keys()

    def items(self):
        return self._cells.items()

    def values(self):
        return self._cells.values()

    def categories(self, dimension: str) -> List:
        return list(self._index[dimension].keys())

    def slice_keys(self, dimension: str, category) -> List[CubeKey]:
        return self._index[dimension].get(category, [])

    def slice_sum(self, dimension: str, category) -> float:
        return sum(self._cells[k] for k in self.slice_keys(dimension, category))

    def scale_slice(self, dimension: str, category, ratio: float) -> None:
        for k in self.slice_keys(dimension, category):
            self._cells[k] *= ratio

    def total(self) -> float:
        return sum(self._cells.values())

    def is_valid(self) -> bool:
        """No negative or non-finite cells."""
        if not self._cells:
            return True
        arr = np.fromiter(self._cells.values(), dtype=float, count=len(self._cells))
        return bool(np.all(np.isfinite(arr)) and np.all(arr >= 0))

    def copy(self) -> 'Cube':
        return Cube(self._cells)

    def to_frame(self) -> pd.DataFrame:
        """Long-format DataFrame with one row per cell."""
        rows = [
            {'nationality': k.nationality, 'visa': k.visa, 'age_band': k.age_band,
             'gender': k.gender.value, 'value': v}
            for k, v in self._cells.items()
        ]
        return pd.DataFrame(rows, columns=['nationality', 'visa', 'age_band', 'gender', 'value'])


@dataclass(frozen=True)
class ErrorSample:
    iteration: int
    error_percent: float


class SolverState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    CONVERGED = "converged"
    CAPPED = "capped"
    STOPPED = "stopped"


class IPFSolver:
    """
    Stepwise IPF driver over a Cube it owns.

    Args:
        cube: Seed cube; mutated in place by every pass
        targets: Mapping dimension name -> {category: target}; gender keys are Gender members
        anchor: Population anchor used to express pass error in percent
        history_window: Number of trailing ErrorSamples retained
        tolerance: If set, auto_run stops as 'converged' once a pass error is at or below it
    """

    def __init__(self, cube: Cube, targets: Dict[str, Dict], anchor: float,
                 history_window: int = 50, tolerance: Optional[float] = None):
        for dimension, values in targets.items():
            if dimension not in SWEEP_ORDER:
                raise ValueError(f"Unknown dimension: {dimension}")
            bad = [c for c, t in values.items() if not math.isfinite(t) or t < 0]
            if bad:
                raise ValueError(f"Targets for {dimension} must be finite and non-negative: {bad}")
        self.cube = cube
        self.targets = {d: dict(targets.get(d, {})) for d in SWEEP_ORDER}
        self.anchor = anchor
        self.tolerance = tolerance
        self.history = deque(maxlen=history_window)
        self.iterations = 0
        self.state = SolverState.IDLE
        self._running = False

    @property
    def error_history(self) -> List[ErrorSample]:
        return list(self.history)

    @property
    def last_error(self) -> Optional[float]:
        return self.history[-1].error_percent if self.history else None

    @property
    def is_running(self) -> bool:
        return self._running

    def sweep(self, dimension: str) -> float:
        """
        Rescale every category of one dimension toward its target.

        Returns:
            Sum of |current - target| over the categories with a positive target
        """
        error = 0.0
        for category, target in self.targets[dimension].items():
            if target <= 0:
                continue
            current = self.cube.slice_sum(dimension, category)
            if current == 0:
                logger.debug(f"Skipping {dimension}={category!r}: no mass to rescale")
                continue
            ratio = target / current
            if ratio != 1:
                self.cube.scale_slice(dimension, category, ratio)
            error += abs(current - target)
        return error

    def step(self) -> ErrorSample:
        """
        Run one full pass (four sweeps) and record its error sample.

        A pass driven from outside auto_run leaves the solver STOPPED: it has
        progress but no loop is running.
        """
        total_error = 0.0
        for dimension in SWEEP_ORDER:
            total_error += self.sweep(dimension)

        if not self.cube.is_valid():
            raise FloatingPointError("IPF pass produced negative or non-finite cells")

        error_percent = (total_error / self.anchor) * 100 if self.anchor > 0 else 0.0
        self.iterations += 1
        sample = ErrorSample(iteration=self.iterations, error_percent=error_percent)
        self.history.append(sample)
        if not self._running:
            self.state = SolverState.STOPPED
        logger.debug(f"IPF pass {sample.iteration}: error={error_percent:.6f}%")
        return sample

    def reset_progress(self) -> None:
        """Clear the pass counter and error history (the cube is kept)."""
        self.iterations = 0
        self.history.clear()
        self.state = SolverState.IDLE

    def cancel(self) -> None:
        """Request a running auto_run to stop after the current pass."""
        self._running = False

    def auto_run(self, max_passes: int = 100, delay: float = 0.0,
                 on_sample: Optional[Callable[[ErrorSample], None]] = None,
                 restart: bool = True) -> SolverState:
        """
        Run passes until the pass counter reaches max_passes or cancel() is called.

        Args:
            max_passes: Pass budget, counted by the solver's iteration counter
            delay: Seconds to sleep between passes so intermediate state can be observed
            on_sample: Callback invoked with each ErrorSample as it completes
            restart: Reset counter and history first

        Returns:
            Final state: CAPPED, STOPPED or CONVERGED
        """
        if restart:
            self.reset_progress()
        self._running = True
        self.state = SolverState.RUNNING
        logger.info(f"IPF auto-run started (budget {max_passes} passes)")

        while self._running and self.iterations < max_passes:
            sample = self.step()
            if on_sample is not None:
                on_sample(sample)
            if self.tolerance is not None and sample.error_percent <= self.tolerance:
                self.state = SolverState.CONVERGED
                break
            if delay > 0 and self._running and self.iterations < max_passes:
                time.sleep(delay)
        else:
            self.state = SolverState.STOPPED if self.iterations < max_passes else SolverState.CAPPED

        self._running = False
        logger.info(f"IPF auto-run finished: state={self.state.value}, passes={self.iterations}, "
                    f"error={self.last_error if self.last_error is not None else float('nan'):.6f}%")
        return self.state


def targets_from_marginals(marginals) -> Dict[str, Dict]:
    """Solver target mapping from a MarginalSet."""
    return {
        'nationality': dict(marginals.nationality),
        'visa': dict(marginals.visa),
        'age': dict(marginals.age),
        'gender': {g: marginals.gender.get(g, 0) for g in GENDERS},
    }


def gender_totals(cube: Cube) -> Dict[Gender, float]:
    return {g: cube.slice_sum('gender', g) for g in GENDERS}


def marginal_sums(cube: Cube, dimension: str, categories: Iterable) -> Dict:
    return {c: cube.slice_sum(dimension, c) for c in categories}
