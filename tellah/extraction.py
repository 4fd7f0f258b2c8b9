"""
Tellah - Pattern Extraction

Turns star ratings into reusable quality criteria. One extraction pass:

  1. Select the project's rated outputs since the last snapshot
  2. Shape them into {input, output, stars, feedback, tags} records
  3. Ask the LLM which patterns separate good outputs from bad ones
  4. Derive success rate, confidence score and criteria breakdown
  5. Store the extraction and its metric as one snapshot

The LLM's JSON is stored verbatim; nothing downstream depends on it being
well-formed beyond best-effort reads of `criteria`.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from api.llm import analyze_rating_patterns
from tellah import storage
from tellah.errors import InvalidRequestError, NotFoundError
from tellah.metrics import (
    compute_confidence_score,
    compute_criteria_breakdown,
    compute_success_rate,
    interpret_confidence,
    interpret_success_rate,
)

logger = logging.getLogger(__name__)

INCREMENTAL = "incremental"
FULL = "full"

NO_RATINGS_MESSAGE = (
    "No rated outputs found. Please rate at least a few outputs before analyzing patterns."
)
NO_NEW_RATINGS_MESSAGE = (
    "No new ratings since the last extraction. Rate more outputs or run a full extraction."
)


@dataclass
class ExtractionResult:
    """Outcome of a single extraction pass"""
    extraction: Dict[str, Any]
    metric: Dict[str, Any]
    analyzed_outputs: int
    window_start: Optional[str] = None
    window_end: Optional[str] = None
    mode: str = INCREMENTAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "extraction": self.extraction,
            "metric": self.metric,
            "analyzed_outputs": self.analyzed_outputs,
            "window_start": self.window_start,
            "window_end": self.window_end,
            "mode": self.mode,
        }


@dataclass
class Insights:
    """An extraction snapshot with its metric and interpretations"""
    project: Dict[str, Any]
    extraction: Optional[Dict[str, Any]] = None
    metric: Optional[Dict[str, Any]] = None
    rated_count: int = 0
    interpretations: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project": self.project,
            "extraction": self.extraction,
            "metric": self.metric,
            "rated_count": self.rated_count,
            "success_rate": (self.metric or {}).get("success_rate") or 0.0,
            "confidence_score": (self.extraction or {}).get("confidence_score") or 0.0,
            "interpretations": self.interpretations,
        }


def select_rated_outputs(
    project_id: int,
    mode: str = INCREMENTAL,
    until: Optional[str] = None,
) -> tuple:
    """
    Return (window_start, rated_outputs) for the next extraction.

    In incremental mode the window opens at the latest extraction's
    timestamp, so only outputs rated after it are included. Full mode
    takes every rated output. `until` closes the window (inclusive).
    """
    window_start = None
    if mode == INCREMENTAL:
        latest = storage.get_latest_extraction(project_id)
        if latest:
            window_start = latest["created_at"]

    return window_start, storage.list_rated_outputs(project_id, since=window_start, until=until)


def build_analysis_data(rated_outputs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Shape rated outputs into the records sent to the LLM."""
    return [
        {
            "input": o["input_text"],
            "output": o["output_text"],
            "stars": o["stars"],
            "feedback": o.get("feedback_text"),
            "tags": o.get("tags"),
        }
        for o in rated_outputs
    ]


async def run_extraction(project_id: int, mode: str = INCREMENTAL) -> ExtractionResult:
    """
    Run a pattern-extraction pass for a project and store the snapshot.

    Raises:
        NotFoundError: the project doesn't exist
        InvalidRequestError: unknown mode, or nothing rated in the window
        LLMError: the model call failed or returned invalid JSON
    """
    if mode not in (INCREMENTAL, FULL):
        raise InvalidRequestError(f"Unknown extraction mode: {mode}")

    project = storage.get_project(project_id)
    if not project:
        raise NotFoundError(f"Project not found: {project_id}")

    # Ratings made while the LLM call runs belong to the next window
    window_end = storage.now()
    window_start, rated_outputs = select_rated_outputs(project_id, mode, until=window_end)
    if not rated_outputs:
        raise InvalidRequestError(NO_NEW_RATINGS_MESSAGE if window_start else NO_RATINGS_MESSAGE)

    logger.info(
        f"Extracting patterns for project {project_id} from {len(rated_outputs)} "
        f"rated outputs (mode={mode}, since={window_start or 'beginning'})"
    )

    analysis_data = build_analysis_data(rated_outputs)
    analysis = await analyze_rating_patterns(analysis_data)

    rated_count = len(rated_outputs)
    criteria = analysis.get("criteria")
    extraction, metric = storage.save_snapshot(
        project_id=project_id,
        criteria=analysis,
        confidence_score=compute_confidence_score(rated_count),
        rated_output_count=rated_count,
        success_rate=compute_success_rate(o["stars"] for o in rated_outputs),
        criteria_breakdown=compute_criteria_breakdown(criteria if isinstance(criteria, list) else []),
        created_at=window_end,
    )

    logger.info(
        f"Extraction {extraction['id']} stored: success_rate={metric['success_rate']:.2f}, "
        f"confidence={extraction['confidence_score']:.2f}"
    )

    return ExtractionResult(
        extraction=extraction,
        metric=metric,
        analyzed_outputs=rated_count,
        window_start=window_start,
        window_end=window_end,
        mode=mode,
    )


def list_extraction_history(project_id: int) -> List[Dict[str, Any]]:
    """Extraction snapshots for a project, newest first."""
    if not storage.get_project(project_id):
        raise NotFoundError(f"Project not found: {project_id}")

    scenario_count = len(storage.list_scenarios(project_id))
    history = []
    for row in storage.list_extractions(project_id):
        rated_count = row.get("rated_output_count") or 0
        confidence = row.get("confidence_score") or 0.0
        success_rate = row.get("success_rate") or 0.0
        history.append({
            "id": row["id"],
            "created_at": row["created_at"],
            "confidence_score": confidence,
            "rated_output_count": rated_count,
            "success_rate": success_rate,
            "scenario_count": scenario_count,
            "interpretations": {
                "success_rate": interpret_success_rate(success_rate).to_dict(),
                "confidence": interpret_confidence(confidence, rated_count).to_dict(),
            },
        })
    return history


def get_insights(project_id: int, extraction_id: Optional[int] = None) -> Insights:
    """
    Latest (or a specific) extraction for a project with its metric.

    Returns Insights with extraction=None when nothing has been extracted yet.
    """
    project = storage.get_project(project_id)
    if not project:
        raise NotFoundError(f"Project not found: {project_id}")

    if extraction_id is not None:
        extraction = storage.get_extraction(extraction_id)
        if not extraction or extraction["project_id"] != project_id:
            raise NotFoundError(f"Extraction not found: {extraction_id}")
        metric = storage.get_latest_metric(project_id, extraction_id=extraction_id)
    else:
        extraction = storage.get_latest_extraction(project_id)
        metric = storage.get_latest_metric(project_id)

    rated_count = storage.count_rated_outputs(project_id)
    insights = Insights(project=project, extraction=extraction, metric=metric, rated_count=rated_count)

    if extraction:
        success_rate = (metric or {}).get("success_rate") or 0.0
        confidence = extraction.get("confidence_score") or 0.0
        insights.interpretations = {
            "success_rate": interpret_success_rate(success_rate).to_dict(),
            "confidence": interpret_confidence(confidence, rated_count).to_dict(),
        }

    return insights
