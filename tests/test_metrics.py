#!/usr/bin/env python3
"""
Tests for success rate, confidence score and their interpretations.

Usage:
    python3 -m unittest tests.test_metrics -v
"""

import os
import sys
import unittest

_project_root = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _project_root)

from tellah.metrics import (  # noqa: E402
    compute_confidence_score,
    compute_criteria_breakdown,
    compute_success_rate,
    interpret_confidence,
    interpret_success_rate,
)


class TestSuccessRate(unittest.TestCase):

    def test_four_and_five_stars_count_as_success(self):
        self.assertAlmostEqual(compute_success_rate([5, 4, 3, 2, 1]), 0.4)

    def test_all_successful(self):
        self.assertEqual(compute_success_rate([4, 4, 5]), 1.0)

    def test_empty_is_zero(self):
        self.assertEqual(compute_success_rate([]), 0.0)

    def test_accepts_generator(self):
        self.assertAlmostEqual(compute_success_rate(s for s in (1, 5)), 0.5)


class TestConfidenceScore(unittest.TestCase):

    def test_linear_below_cap(self):
        self.assertAlmostEqual(compute_confidence_score(5), 0.25)
        self.assertAlmostEqual(compute_confidence_score(10), 0.5)

    def test_capped(self):
        self.assertAlmostEqual(compute_confidence_score(18), 0.9)
        self.assertAlmostEqual(compute_confidence_score(20), 0.9)
        self.assertAlmostEqual(compute_confidence_score(500), 0.9)

    def test_zero(self):
        self.assertEqual(compute_confidence_score(0), 0.0)


class TestCriteriaBreakdown(unittest.TestCase):

    def test_maps_dimension_to_importance(self):
        criteria = [
            {"dimension": "Length", "importance": "high"},
            {"dimension": "Tone", "importance": "medium"},
        ]
        self.assertEqual(compute_criteria_breakdown(criteria), {"Length": "high", "Tone": "medium"})

    def test_skips_malformed_entries(self):
        criteria = ["not a dict", {"importance": "low"}, {"dimension": "Structure"}]
        self.assertEqual(compute_criteria_breakdown(criteria), {"Structure": None})

    def test_none(self):
        self.assertEqual(compute_criteria_breakdown(None), {})


class TestInterpretations(unittest.TestCase):

    def test_success_rate_bands(self):
        self.assertEqual(interpret_success_rate(0.8).label, "Excellent")
        self.assertEqual(interpret_success_rate(0.79).label, "Good")
        self.assertEqual(interpret_success_rate(0.6).label, "Good")
        self.assertEqual(interpret_success_rate(0.4).label, "Needs Attention")
        self.assertEqual(interpret_success_rate(0.39).label, "Critical")
        self.assertEqual(interpret_success_rate(0.0).variant, "destructive")

    def test_excellent_has_no_action(self):
        self.assertIsNone(interpret_success_rate(1.0).actionable)
        self.assertIsNotNone(interpret_success_rate(0.5).actionable)

    def test_confidence_bands(self):
        high = interpret_confidence(0.9, 25)
        self.assertEqual(high.label, "High Confidence")
        self.assertIn("25 ratings", high.message)

        self.assertEqual(interpret_confidence(0.5, 10).label, "Moderate Confidence")

        low = interpret_confidence(0.1, 2)
        self.assertEqual(low.label, "Low Confidence")
        self.assertEqual(low.message, "Only 2 ratings analyzed.")

    def test_to_dict(self):
        d = interpret_success_rate(0.65).to_dict()
        self.assertEqual(set(d), {"label", "variant", "message", "actionable"})
        self.assertEqual(d["variant"], "secondary")


if __name__ == "__main__":
    unittest.main(verbosity=2)
