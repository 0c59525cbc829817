"""Tests for the heuristic rule table, prior-period probabilities and seed blending."""

import unittest

from census_cube.category_mapper import AGE_BANDS
from census_cube.ipf_solver import CubeKey
from census_cube.records import ClassifiedRecord, DimensionKind, Gender
from census_cube.seed_constructor import (
    DEFAULT_RULES,
    SeedContext,
    SeedParameters,
    WeightRule,
    apply_rules,
    build_seed,
    build_seed_for_selection,
    prior_probabilities,
)

M = Gender.MALE
F = Gender.FEMALE


def rec(dimension, label, count, period='2022', region='Ansan', aggregate=False):
    return ClassifiedRecord(period, region, dimension, label, Gender.AGGREGATE, count, aggregate)


class RuleTableTests(unittest.TestCase):

    def test_rules_are_named_and_scoped(self):
        names = [r.name for r in DEFAULT_RULES]
        self.assertEqual(len(names), len(set(names)))
        self.assertEqual({r.scope for r in DEFAULT_RULES}, {'base', 'gender'})

    def test_apply_rules_multiplies_matching_rules(self):
        rules = [
            WeightRule('always', lambda c: True, 3.0),
            WeightRule('never', lambda c: False, 100.0),
            WeightRule('gender_only', lambda c: True, 7.0, scope='gender'),
        ]
        ctx = SeedContext('n', 'v', '20-24', None, 'g', 'vg', '20-29')
        self.assertEqual(apply_rules(ctx, rules, 'base'), 3.0)
        self.assertEqual(apply_rules(ctx, rules, 'gender'), 7.0)
        self.assertEqual(apply_rules(ctx, [], 'base'), 1.0)


class HeuristicSeedTests(unittest.TestCase):

    def test_cartesian_product_of_categories(self):
        cube = build_seed(['베트남', '중국'], ['E-9', 'D-2', 'F-4'])
        self.assertEqual(len(cube), 2 * 3 * len(AGE_BANDS) * 2)
        self.assertTrue(all(v > 0 for v in cube.values()))

    def test_unskilled_labor_weights(self):
        cube = build_seed(['베트남'], ['E-9'])
        # 5x (Southeast Asia) * 4x (20s) * 2x (male) + 0.1
        self.assertAlmostEqual(cube[CubeKey('베트남', 'E-9', '25-29', M)], 40.1)
        self.assertAlmostEqual(cube[CubeKey('베트남', 'E-9', '25-29', F)], 20.1)
        self.assertAlmostEqual(cube[CubeKey('베트남', 'E-9', '00-04', M)], 10.1)
        self.assertAlmostEqual(cube[CubeKey('베트남', 'E-9', '40-44', F)], 5.1)

    def test_student_weights(self):
        cube = build_seed(['미국'], ['D-2'])
        self.assertAlmostEqual(cube[CubeKey('미국', 'D-2', '20-24', F)], 10.1)
        self.assertAlmostEqual(cube[CubeKey('미국', 'D-2', '30-34', F)], 1.1)

    def test_compatriot_weights(self):
        cube = build_seed(['한국계 중국인', '베트남'], ['F-4'])
        self.assertAlmostEqual(cube[CubeKey('한국계 중국인', 'F-4', '50-54', M)], 5.1)
        self.assertAlmostEqual(cube[CubeKey('베트남', 'F-4', '50-54', M)], 1.1)

    def test_marriage_visa_female_weight(self):
        cube = build_seed(['베트남'], ['F-6'])
        self.assertAlmostEqual(cube[CubeKey('베트남', 'F-6', '30-34', F)], 6.1)
        self.assertAlmostEqual(cube[CubeKey('베트남', 'F-6', '30-34', M)], 1.1)

    def test_custom_rules_and_smoothing(self):
        cube = build_seed(['베트남'], ['E-9'], rules=[], params=SeedParameters(laplace=0.5))
        self.assertTrue(all(v == 1.5 for v in cube.values()))

    def test_empty_categories_give_empty_cube(self):
        self.assertEqual(len(build_seed([], ['E-9'])), 0)


class HistoricalBlendTests(unittest.TestCase):

    def prior_records(self):
        return [
            rec(DimensionKind.NATIONALITY, '베트남', 60),
            rec(DimensionKind.NATIONALITY, '중국', 40),
            rec(DimensionKind.NATIONALITY, '합계', 100, aggregate=True),
            rec(DimensionKind.VISA, 'E-9', 50),
            rec(DimensionKind.AGE, '25-29세', 30),
        ]

    def test_prior_probabilities_assume_independence(self):
        probs = prior_probabilities(self.prior_records(), '2022', 'Ansan', ['베트남', '중국'], ['E-9'])
        self.assertAlmostEqual(probs[('베트남', 'E-9', '25-29')], 0.6 * 0.5 * 0.3)
        self.assertAlmostEqual(probs[('중국', 'E-9', '25-29')], 0.4 * 0.5 * 0.3)
        self.assertEqual(probs[('베트남', 'E-9', '00-04')], 0.0)

    def test_no_prior_nationality_rows_gives_no_history(self):
        records = [rec(DimensionKind.VISA, 'E-9', 50)]
        self.assertEqual(prior_probabilities(records, '2022', 'Ansan', ['베트남'], ['E-9']), {})

    def test_blend_formula(self):
        history = {('베트남', 'E-9', '25-29'): 0.01}
        cube = build_seed(['베트남'], ['E-9'], history=history)
        # (20 * 0.3 + 0.01 * 10000 * 0.7) * 2 + 0.1
        self.assertAlmostEqual(cube[CubeKey('베트남', 'E-9', '25-29', M)], 152.1)
        # zero probability keeps the heuristic weight
        self.assertAlmostEqual(cube[CubeKey('베트남', 'E-9', '30-34', M)], 40.1)

    def test_seed_for_selection_uses_previous_period_when_enabled(self):
        records = self.prior_records()
        with_prior = build_seed_for_selection(records, '2023', 'Ansan', ['베트남'], ['E-9'],
                                              use_prior_seed=True)
        without = build_seed_for_selection(records, '2023', 'Ansan', ['베트남'], ['E-9'],
                                           use_prior_seed=False)
        key = CubeKey('베트남', 'E-9', '25-29', M)
        self.assertAlmostEqual(without[key], 40.1)
        self.assertAlmostEqual(with_prior[key], (20 * 0.3 + 0.09 * 10000 * 0.7) * 2 + 0.1)
        self.assertEqual(set(with_prior.keys()), set(without.keys()))


if __name__ == "__main__":
    unittest.main()
