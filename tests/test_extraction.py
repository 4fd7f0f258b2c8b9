#!/usr/bin/env python3
"""
Tests for the pattern-extraction pass.

The LLM call is patched out; everything else (storage, metrics, the
incremental window) runs against a temporary SQLite database.

Usage:
    python3 -m unittest tests.test_extraction -v
"""

import asyncio
import os
import shutil
import sys
import tempfile
import unittest
from unittest.mock import AsyncMock, patch

_project_root = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _project_root)

from api.llm import LLMError  # noqa: E402
from tellah import extraction, storage  # noqa: E402
from tellah.errors import InvalidRequestError, NotFoundError  # noqa: E402

SAMPLE_ANALYSIS = {
    "summary": "Short, specific answers rate highest.",
    "criteria": [
        {
            "dimension": "Length",
            "pattern": "Answers under three sentences",
            "good_example": "Gets to the point",
            "bad_example": "Rambles",
            "importance": "high",
        },
        {
            "dimension": "Tone",
            "pattern": "Warm but professional",
            "good_example": "Acknowledges the customer",
            "bad_example": "Curt refusals",
            "importance": "medium",
        },
    ],
    "key_insights": ["Brevity matters"],
    "recommendations": ["Tell the model to keep replies short"],
}


def run_async(coro):
    """Helper to run async coroutines in sync test methods."""
    return asyncio.run(coro)


def patch_llm(return_value=None, side_effect=None):
    return patch(
        "tellah.extraction.analyze_rating_patterns",
        new_callable=AsyncMock,
        return_value=return_value if return_value is not None else SAMPLE_ANALYSIS,
        side_effect=side_effect,
    )


class TestExtraction(unittest.TestCase):
    """Extraction against a fresh database per test."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        os.environ["TELLAH_DB_PATH"] = os.path.join(self.temp_dir, "tellah_test.db")
        storage.init_db()

        self.project = storage.create_project(
            "Support Bot",
            {"model": "gpt-4", "temperature": 0.7, "system_prompt": "You are a support agent."},
        )
        self.outputs = []
        for i, text in enumerate(["Where is my order?", "Cancel my plan", "Reset my password", "Refund please"]):
            scenario = storage.create_scenario(self.project["id"], text)
            self.outputs.append(storage.create_output(scenario["id"], f"Answer {i}", {"model": "gpt-4"}))

    def tearDown(self):
        os.environ.pop("TELLAH_DB_PATH", None)
        shutil.rmtree(self.temp_dir)

    def _rate(self, index, stars, feedback=None, tags=None):
        return storage.create_rating(self.outputs[index]["id"], stars, feedback_text=feedback, tags=tags)

    def test_first_extraction_uses_all_ratings(self):
        self._rate(0, 5, feedback="Perfect", tags=["concise"])
        self._rate(1, 2, feedback="Too curt")

        with patch_llm() as mock_llm:
            result = run_async(extraction.run_extraction(self.project["id"]))

        self.assertEqual(result.analyzed_outputs, 2)
        self.assertIsNone(result.window_start)
        self.assertEqual(result.mode, extraction.INCREMENTAL)

        sent = mock_llm.call_args[0][0]
        self.assertEqual(
            sent[0],
            {
                "input": "Where is my order?",
                "output": "Answer 0",
                "stars": 5,
                "feedback": "Perfect",
                "tags": ["concise"],
            },
        )
        self.assertEqual(sent[1]["stars"], 2)
        self.assertIsNone(sent[1]["tags"])

    def test_snapshot_metrics(self):
        self._rate(0, 5)
        self._rate(1, 4)
        self._rate(2, 3)
        self._rate(3, 1)

        with patch_llm():
            result = run_async(extraction.run_extraction(self.project["id"]))

        self.assertEqual(result.extraction["criteria"], SAMPLE_ANALYSIS)
        self.assertEqual(result.extraction["rated_output_count"], 4)
        self.assertAlmostEqual(result.extraction["confidence_score"], 0.2)
        self.assertAlmostEqual(result.metric["success_rate"], 0.5)
        self.assertEqual(result.metric["criteria_breakdown"], {"Length": "high", "Tone": "medium"})
        self.assertEqual(result.metric["extraction_id"], result.extraction["id"])

        d = result.to_dict()
        self.assertTrue(d["success"])
        self.assertEqual(d["analyzed_outputs"], 4)

    def test_no_ratings(self):
        with patch_llm() as mock_llm:
            with self.assertRaises(InvalidRequestError) as ctx:
                run_async(extraction.run_extraction(self.project["id"]))
        self.assertEqual(str(ctx.exception), extraction.NO_RATINGS_MESSAGE)
        mock_llm.assert_not_called()
        self.assertIsNone(storage.get_latest_extraction(self.project["id"]))

    def test_incremental_only_sees_new_ratings(self):
        self._rate(0, 5)
        self._rate(1, 1)
        with patch_llm():
            first = run_async(extraction.run_extraction(self.project["id"]))

        self._rate(2, 4)
        with patch_llm() as mock_llm:
            second = run_async(extraction.run_extraction(self.project["id"]))

        self.assertEqual(second.window_start, first.extraction["created_at"])
        self.assertEqual(second.analyzed_outputs, 1)
        self.assertEqual(len(mock_llm.call_args[0][0]), 1)
        self.assertEqual(mock_llm.call_args[0][0][0]["input"], "Reset my password")
        self.assertAlmostEqual(second.metric["success_rate"], 1.0)
        self.assertAlmostEqual(second.extraction["confidence_score"], 0.05)

    def test_rerating_enters_next_window(self):
        self._rate(0, 2)
        with patch_llm():
            run_async(extraction.run_extraction(self.project["id"]))

        self._rate(0, 5)
        with patch_llm() as mock_llm:
            result = run_async(extraction.run_extraction(self.project["id"]))

        sent = mock_llm.call_args[0][0]
        self.assertEqual(len(sent), 1)
        self.assertEqual(sent[0]["stars"], 5)
        self.assertEqual(result.analyzed_outputs, 1)

    def test_rating_during_llm_call_enters_next_window(self):
        self._rate(0, 5)

        async def rate_while_analyzing(analysis_data):
            self._rate(1, 1, feedback="Rated mid-extraction")
            return SAMPLE_ANALYSIS

        with patch("tellah.extraction.analyze_rating_patterns", new=rate_while_analyzing):
            first = run_async(extraction.run_extraction(self.project["id"]))
        self.assertEqual(first.analyzed_outputs, 1)
        self.assertEqual(first.extraction["created_at"], first.window_end)

        with patch_llm() as mock_llm:
            second = run_async(extraction.run_extraction(self.project["id"]))

        sent = mock_llm.call_args[0][0]
        self.assertEqual(second.analyzed_outputs, 1)
        self.assertEqual(sent[0]["input"], "Cancel my plan")
        self.assertEqual(sent[0]["feedback"], "Rated mid-extraction")

    def test_incremental_with_nothing_new(self):
        self._rate(0, 5)
        with patch_llm():
            run_async(extraction.run_extraction(self.project["id"]))

        with patch_llm() as mock_llm:
            with self.assertRaises(InvalidRequestError) as ctx:
                run_async(extraction.run_extraction(self.project["id"]))
        self.assertEqual(str(ctx.exception), extraction.NO_NEW_RATINGS_MESSAGE)
        mock_llm.assert_not_called()
        self.assertEqual(len(storage.list_extractions(self.project["id"])), 1)

    def test_full_mode_reanalyzes_everything(self):
        self._rate(0, 5)
        self._rate(1, 1)
        with patch_llm():
            run_async(extraction.run_extraction(self.project["id"]))

        with patch_llm() as mock_llm:
            result = run_async(extraction.run_extraction(self.project["id"], mode=extraction.FULL))

        self.assertIsNone(result.window_start)
        self.assertEqual(result.analyzed_outputs, 2)
        self.assertEqual(len(mock_llm.call_args[0][0]), 2)

    def test_unknown_mode(self):
        with self.assertRaises(InvalidRequestError):
            run_async(extraction.run_extraction(self.project["id"], mode="sometimes"))

    def test_missing_project(self):
        with self.assertRaises(NotFoundError):
            run_async(extraction.run_extraction(9999))

    def test_llm_failure_stores_nothing(self):
        self._rate(0, 5)
        with patch_llm(side_effect=LLMError("boom")):
            with self.assertRaises(LLMError):
                run_async(extraction.run_extraction(self.project["id"]))
        self.assertIsNone(storage.get_latest_extraction(self.project["id"]))
        self.assertIsNone(storage.get_latest_metric(self.project["id"]))

    def test_malformed_analysis_is_stored_verbatim(self):
        self._rate(0, 5)
        odd = {"summary": "no criteria here", "criteria": "not a list"}
        with patch_llm(return_value=odd):
            result = run_async(extraction.run_extraction(self.project["id"]))
        self.assertEqual(result.extraction["criteria"], odd)
        self.assertEqual(result.metric["criteria_breakdown"], {})


class TestHistoryAndInsights(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        os.environ["TELLAH_DB_PATH"] = os.path.join(self.temp_dir, "tellah_test.db")
        storage.init_db()

        self.project = storage.create_project("Support Bot", {"model": "gpt-4"})
        s1 = storage.create_scenario(self.project["id"], "Where is my order?")
        s2 = storage.create_scenario(self.project["id"], "Cancel my plan")
        self.o1 = storage.create_output(s1["id"], "Tomorrow.", {})
        self.o2 = storage.create_output(s2["id"], "Done.", {})

    def tearDown(self):
        os.environ.pop("TELLAH_DB_PATH", None)
        shutil.rmtree(self.temp_dir)

    def test_insights_before_any_extraction(self):
        insights = extraction.get_insights(self.project["id"])
        self.assertIsNone(insights.extraction)
        self.assertIsNone(insights.metric)
        self.assertEqual(insights.interpretations, {})
        d = insights.to_dict()
        self.assertEqual(d["success_rate"], 0.0)
        self.assertEqual(d["confidence_score"], 0.0)

    def test_insights_latest(self):
        storage.create_rating(self.o1["id"], 5)
        with patch_llm():
            result = run_async(extraction.run_extraction(self.project["id"]))
        storage.create_rating(self.o2["id"], 1)

        insights = extraction.get_insights(self.project["id"])
        self.assertEqual(insights.extraction["id"], result.extraction["id"])
        self.assertEqual(insights.rated_count, 2)
        self.assertEqual(insights.interpretations["success_rate"]["label"], "Excellent")
        self.assertEqual(insights.interpretations["confidence"]["label"], "Low Confidence")
        self.assertEqual(insights.to_dict()["success_rate"], 1.0)

    def test_insights_for_specific_extraction(self):
        storage.create_rating(self.o1["id"], 5)
        with patch_llm():
            first = run_async(extraction.run_extraction(self.project["id"]))
        storage.create_rating(self.o2["id"], 1)
        with patch_llm():
            run_async(extraction.run_extraction(self.project["id"]))

        insights = extraction.get_insights(self.project["id"], extraction_id=first.extraction["id"])
        self.assertEqual(insights.extraction["id"], first.extraction["id"])
        self.assertEqual(insights.metric["extraction_id"], first.extraction["id"])
        self.assertAlmostEqual(insights.metric["success_rate"], 1.0)

    def test_insights_rejects_foreign_extraction(self):
        other = storage.create_project("Other", {"model": "gpt-4"})
        extraction_row, _ = storage.save_snapshot(other["id"], {}, 0.1, 1, 1.0, {})
        with self.assertRaises(NotFoundError):
            extraction.get_insights(self.project["id"], extraction_id=extraction_row["id"])

    def test_history(self):
        storage.create_rating(self.o1["id"], 5)
        with patch_llm():
            first = run_async(extraction.run_extraction(self.project["id"]))
        storage.create_rating(self.o2["id"], 2)
        with patch_llm():
            second = run_async(extraction.run_extraction(self.project["id"]))

        history = extraction.list_extraction_history(self.project["id"])
        self.assertEqual([h["id"] for h in history], [second.extraction["id"], first.extraction["id"]])
        self.assertEqual(history[0]["rated_output_count"], 1)
        self.assertEqual(history[0]["success_rate"], 0.0)
        self.assertEqual(history[0]["scenario_count"], 2)
        self.assertEqual(history[0]["interpretations"]["success_rate"]["label"], "Critical")
        self.assertEqual(history[1]["interpretations"]["success_rate"]["label"], "Excellent")

    def test_history_missing_project(self):
        with self.assertRaises(NotFoundError):
            extraction.list_extraction_history(9999)


if __name__ == "__main__":
    unittest.main(verbosity=2)
