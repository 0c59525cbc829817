import copy
import math
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml

from .aggregation import Z_SCORES, DisplayOptions
from .category_mapper import LEVELS
from .records import Gender
from .seed_constructor import SeedParameters

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), 'configs', 'default_config.yaml')


def load_config(yaml_path: str) -> Dict[str, Any]:
    """
    Load and parse a YAML configuration file.

    Args:
        yaml_path: Path to the YAML configuration file

    Returns:
        Dictionary containing the parsed configuration
    """
    try:
        with open(yaml_path, 'r', encoding='utf-8') as file:
            config = yaml.safe_load(file)
        return config or {}
    except FileNotFoundError:
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Error parsing YAML configuration: {e}")


def merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


@dataclass
class SolverSettings:
    max_passes: int = 100
    step_delay_seconds: float = 0.03
    history_window: int = 50
    tolerance: Optional[float] = None


@dataclass
class EngineSettings:
    display: DisplayOptions = field(default_factory=DisplayOptions)
    solver: SolverSettings = field(default_factory=SolverSettings)
    seed: SeedParameters = field(default_factory=SeedParameters)
    use_prior_seed: bool = True
    gender_split: Dict[Gender, float] = field(default_factory=lambda: {
        Gender.MALE: 0.52, Gender.FEMALE: 0.48})

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'EngineSettings':
        """Build validated settings from a parsed (merged) configuration dictionary."""
        display_cfg = config.get('display', {})
        solver_cfg = config.get('solver', {})
        seed_cfg = config.get('seed', {})
        marginal_cfg = config.get('marginals', {})

        levels = dict(display_cfg.get('levels', {}))
        for dimension, level in levels.items():
            if level not in LEVELS:
                raise ValueError(f"Invalid level for {dimension}: {level}. Expected one of {LEVELS}")

        thresholds = dict(display_cfg.get('thresholds', {}))
        for dimension, threshold in thresholds.items():
            if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 0:
                raise ValueError(f"Threshold for {dimension} must be a non-negative integer, got {threshold!r}")

        ci_level = display_cfg.get('confidence_level')
        if ci_level is not None and not any(math.isclose(ci_level, z) for z in Z_SCORES):
            raise ValueError(f"Unsupported confidence level: {ci_level}. Expected one of {sorted(Z_SCORES)} or null")

        gender_value = display_cfg.get('gender', 'aggregate') or 'aggregate'
        gender = Gender(gender_value)
        display = DisplayOptions(
            levels={**DisplayOptions().levels, **levels},
            thresholds={**DisplayOptions().thresholds, **thresholds},
            confidence_level=ci_level,
            gender=None if gender == Gender.AGGREGATE else gender,
        )

        split_cfg = marginal_cfg.get('default_gender_split', {'male': 0.52, 'female': 0.48})
        split = {Gender.MALE: float(split_cfg.get('male', 0)), Gender.FEMALE: float(split_cfg.get('female', 0))}
        if not math.isclose(sum(split.values()), 1.0):
            raise ValueError(f"default_gender_split must sum to 1, got {sum(split.values())}")

        solver = SolverSettings(
            max_passes=int(solver_cfg.get('max_passes', 100)),
            step_delay_seconds=float(solver_cfg.get('step_delay_seconds', 0.03)),
            history_window=int(solver_cfg.get('history_window', 50)),
            tolerance=solver_cfg.get('tolerance'),
        )
        seed = SeedParameters(
            heuristic_share=float(seed_cfg.get('heuristic_share', 0.3)),
            history_share=float(seed_cfg.get('history_share', 0.7)),
            history_scale=float(seed_cfg.get('history_scale', 10000)),
            laplace=float(seed_cfg.get('laplace', 0.1)),
        )
        return cls(
            display=display,
            solver=solver,
            seed=seed,
            use_prior_seed=bool(seed_cfg.get('use_prior_seed', True)),
            gender_split=split,
        )


def load_settings(yaml_path: Optional[str] = None) -> EngineSettings:
    """
    Load engine settings: packaged defaults, optionally overridden by a user YAML file.

    Args:
        yaml_path: Optional path to a user configuration file

    Returns:
        Validated EngineSettings
    """
    config = load_config(DEFAULT_CONFIG_PATH)
    if yaml_path:
        config = merge_config(config, load_config(yaml_path))
    return EngineSettings.from_config(config)
