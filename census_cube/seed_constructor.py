"""
Seed Constructor

Builds the initial 4-way table the solver starts from. Each cell weight is a
heuristic prior from an ordered rule table, optionally blended with the
previous period's empirical distribution, plus a Laplace constant so no cell
is ever zero.

Rules see medium-level buckets only for matching; the cube itself always
stores raw labels and fine age bands.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .category_mapper import (
    AGE_20S,
    AGE_30S,
    AGE_BANDS,
    MEDIUM,
    NAT_CENTRAL_ASIA,
    NAT_SE_ASIA,
    NAT_SINOSPHERE,
    VISA_RESIDENCY,
    VISA_STUDENT,
    VISA_UNSKILLED,
    classify_age_label,
    is_marriage_visa,
    map_age,
    map_nationality,
    map_visa,
)
from .ipf_solver import Cube, CubeKey
from .records import GENDERS, ClassifiedRecord, DimensionKind, Gender, previous_period

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeedContext:
    """What a weight rule can look at for one cell."""
    nationality: str
    visa: str
    age_band: str
    gender: Optional[Gender]
    nationality_group: str
    visa_group: str
    age_group: str


@dataclass(frozen=True)
class WeightRule:
    """
    One multiplicative prior.

    scope 'base' rules apply to the (nationality, visa, age) weight before
    historical blending; scope 'gender' rules apply per gender afterwards.
    """
    name: str
    predicate: Callable[[SeedContext], bool]
    multiplier: float
    scope: str = 'base'

    def applies(self, ctx: SeedContext) -> bool:
        return self.predicate(ctx)


DEFAULT_RULES: List[WeightRule] = [
    WeightRule('unskilled_from_se_central_asia',
               lambda c: c.visa_group == VISA_UNSKILLED
               and c.nationality_group in (NAT_SE_ASIA, NAT_CENTRAL_ASIA),
               5.0),
    WeightRule('unskilled_prime_working_age',
               lambda c: c.visa_group == VISA_UNSKILLED and c.age_group in (AGE_20S, AGE_30S),
               4.0),
    WeightRule('student_in_twenties',
               lambda c: c.visa_group == VISA_STUDENT and c.age_group == AGE_20S,
               10.0),
    WeightRule('compatriot_from_sinosphere_central_asia',
               lambda c: c.visa_group == VISA_RESIDENCY
               and c.nationality_group in (NAT_SINOSPHERE, NAT_CENTRAL_ASIA),
               5.0),
    WeightRule('unskilled_male',
               lambda c: c.visa_group == VISA_UNSKILLED and c.gender == Gender.MALE,
               2.0, scope='gender'),
    WeightRule('marriage_female',
               lambda c: is_marriage_visa(c.visa) and c.gender == Gender.FEMALE,
               6.0, scope='gender'),
]


@dataclass
class SeedParameters:
    heuristic_share: float = 0.3
    history_share: float = 0.7
    history_scale: float = 10000.0
    laplace: float = 0.1


def apply_rules(ctx: SeedContext, rules: Iterable[WeightRule], scope: str) -> float:
    """Product of the multipliers of every rule in scope that matches ctx."""
    weight = 1.0
    for rule in rules:
        if rule.scope == scope and rule.applies(ctx):
            weight *= rule.multiplier
    return weight


def prior_probabilities(records: Iterable[ClassifiedRecord], prior_period: str, region: str,
                        nationalities: List[str], visas: List[str]) -> Dict[Tuple[str, str, str], float]:
    """
    Approximate joint probabilities for the prior period.

    Only per-dimension detail counts are known, so nationality, visa and age
    are treated as independent and the cell probability is the product of the
    three marginal probabilities. Every marginal is divided by the prior
    period's nationality total.

    Returns:
        Mapping (nationality, visa, age_band) -> probability; empty if the
        prior period has no nationality detail rows
    """
    prev_nat: Dict[str, int] = {}
    prev_visa: Dict[str, int] = {}
    prev_age: Dict[str, int] = {}
    prev_total = 0

    for r in records:
        if r.period != prior_period or r.region != region:
            continue
        if r.is_aggregate or r.gender != Gender.AGGREGATE:
            continue
        if r.dimension == DimensionKind.NATIONALITY:
            prev_nat[r.label] = prev_nat.get(r.label, 0) + r.count
            prev_total += r.count
        elif r.dimension == DimensionKind.VISA:
            prev_visa[r.label] = prev_visa.get(r.label, 0) + r.count
        else:
            band = classify_age_label(r.label)
            if band is not None:
                prev_age[band] = prev_age.get(band, 0) + r.count

    if prev_total == 0:
        return {}

    probabilities = {}
    for n in nationalities:
        p_n = prev_nat.get(n, 0) / prev_total
        for v in visas:
            p_v = prev_visa.get(v, 0) / prev_total
            for a in AGE_BANDS:
                p_a = prev_age.get(a, 0) / prev_total
                probabilities[(n, v, a)] = p_n * p_v * p_a
    return probabilities


def build_seed(nationalities: List[str], visas: List[str],
               history: Optional[Dict[Tuple[str, str, str], float]] = None,
               rules: Optional[List[WeightRule]] = None,
               params: Optional[SeedParameters] = None) -> Cube:
    """
    Build the seed cube over nationalities x visas x all fine age bands x both genders.

    Args:
        nationalities: Active nationality labels
        visas: Active visa labels
        history: Optional prior-period joint probabilities from prior_probabilities()
        rules: Weight rules, defaults to DEFAULT_RULES
        params: Blend and smoothing constants

    Returns:
        A new Cube with strictly positive cells
    """
    rules = DEFAULT_RULES if rules is None else rules
    params = params or SeedParameters()
    history = history or {}

    cells: Dict[CubeKey, float] = {}
    blended = 0
    for n in nationalities:
        nat_group = map_nationality(n, MEDIUM)
        for v in visas:
            visa_group = map_visa(v, MEDIUM)
            for a in AGE_BANDS:
                ctx = SeedContext(n, v, a, None, nat_group, visa_group, map_age(a, MEDIUM))
                base = apply_rules(ctx, rules, 'base')

                prob = history.get((n, v, a))
                if prob is not None and prob > 0:
                    base = base * params.heuristic_share + prob * params.history_scale * params.history_share
                    blended += 1

                for g in GENDERS:
                    gender_weight = apply_rules(
                        SeedContext(n, v, a, g, nat_group, visa_group, ctx.age_group), rules, 'gender'
                    )
                    cells[CubeKey(n, v, a, g)] = base * gender_weight + params.laplace

    logger.info(f"Seeded cube with {len(cells)} cells "
                f"({len(nationalities)} nationalities x {len(visas)} visas); "
                f"{blended} base cells blended with prior period")
    return Cube(cells)


def build_seed_for_selection(records: List[ClassifiedRecord], period: str, region: str,
                             nationalities: List[str], visas: List[str],
                             use_prior_seed: bool = True,
                             rules: Optional[List[WeightRule]] = None,
                             params: Optional[SeedParameters] = None) -> Cube:
    """Seed for a selection, blending in the preceding period when requested and available."""
    history = None
    if use_prior_seed:
        prior = previous_period(period)
        if prior is not None:
            history = prior_probabilities(records, prior, region, nationalities, visas)
            if not history:
                logger.debug(f"No usable prior-period data for {prior}/{region}")
    return build_seed(nationalities, visas, history=history, rules=rules, params=params)
