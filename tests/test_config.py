"""Tests for YAML configuration loading and validation."""

import os
import tempfile
import unittest

import yaml

from census_cube.config import (
    DEFAULT_CONFIG_PATH,
    EngineSettings,
    load_config,
    load_settings,
    merge_config,
)
from census_cube.records import Gender


class ConfigTests(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmpdir.cleanup()

    def write(self, name, content):
        path = os.path.join(self.tmpdir.name, name)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)
        return path

    def test_packaged_defaults(self):
        settings = load_settings()
        self.assertEqual(settings.display.levels, {'nationality': 'fine', 'visa': 'fine', 'age': 'medium'})
        self.assertEqual(settings.display.thresholds, {'nationality': 50, 'visa': 50, 'age': 0})
        self.assertEqual(settings.display.confidence_level, 0.95)
        self.assertIsNone(settings.display.gender)
        self.assertEqual(settings.solver.max_passes, 100)
        self.assertEqual(settings.solver.history_window, 50)
        self.assertIsNone(settings.solver.tolerance)
        self.assertEqual(settings.seed.heuristic_share, 0.3)
        self.assertEqual(settings.seed.history_share, 0.7)
        self.assertEqual(settings.seed.history_scale, 10000)
        self.assertEqual(settings.seed.laplace, 0.1)
        self.assertTrue(settings.use_prior_seed)
        self.assertEqual(settings.gender_split, {Gender.MALE: 0.52, Gender.FEMALE: 0.48})

    def test_user_file_overrides_defaults(self):
        path = self.write('user.yaml', """
display:
  levels:
    nationality: coarse
  confidence_level: null
  gender: female
seed:
  use_prior_seed: false
marginals:
  default_gender_split:
    male: 0.5
    female: 0.5
""")
        settings = load_settings(path)
        self.assertEqual(settings.display.levels['nationality'], 'coarse')
        self.assertEqual(settings.display.levels['age'], 'medium')
        self.assertIsNone(settings.display.confidence_level)
        self.assertEqual(settings.display.gender, Gender.FEMALE)
        self.assertFalse(settings.use_prior_seed)
        self.assertEqual(settings.gender_split[Gender.MALE], 0.5)
        self.assertEqual(settings.solver.max_passes, 100)

    def test_invalid_values_rejected(self):
        base = load_config(DEFAULT_CONFIG_PATH)
        bad_overrides = [
            {'display': {'levels': {'visa': 'tiny'}}},
            {'display': {'thresholds': {'nationality': -1}}},
            {'display': {'thresholds': {'visa': 2.5}}},
            {'display': {'thresholds': {'visa': 'ten'}}},
            {'display': {'confidence_level': 0.8}},
            {'display': {'gender': 'unknown'}},
            {'marginals': {'default_gender_split': {'male': 0.6, 'female': 0.6}}},
        ]
        for override in bad_overrides:
            with self.subTest(override=override):
                with self.assertRaises(ValueError):
                    EngineSettings.from_config(merge_config(base, override))

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_config(os.path.join(self.tmpdir.name, 'nope.yaml'))

    def test_malformed_file(self):
        path = self.write('bad.yaml', "display: [unclosed\n")
        with self.assertRaises(yaml.YAMLError):
            load_config(path)

    def test_merge_is_deep_and_non_destructive(self):
        base = {'a': {'b': 1, 'c': 2}, 'd': 3}
        merged = merge_config(base, {'a': {'b': 10}})
        self.assertEqual(merged, {'a': {'b': 10, 'c': 2}, 'd': 3})
        self.assertEqual(base['a']['b'], 1)


if __name__ == "__main__":
    unittest.main()
