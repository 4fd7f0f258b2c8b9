"""
Tellah - Metrics

Summary numbers derived from a batch of ratings, and the plain-language
interpretation shown next to them.

  - success rate: share of rated outputs with 4 or 5 stars
  - confidence: how much to trust extracted patterns, from the sample size
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional

SUCCESS_STARS = 4

# Confidence grows linearly with the number of ratings analyzed and caps
# below 1.0: 20 ratings reach the cap.
CONFIDENCE_CAP = 0.9
CONFIDENCE_FULL_SAMPLE = 20


@dataclass
class MetricInterpretation:
    """A label and message for a metric value"""
    label: str
    variant: str  # default, secondary, outline, destructive
    message: str
    actionable: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def compute_success_rate(stars: Iterable[int]) -> float:
    """Fraction of ratings at or above SUCCESS_STARS (0.0 for no ratings)."""
    stars = list(stars)
    if not stars:
        return 0.0
    successful = sum(1 for s in stars if s >= SUCCESS_STARS)
    return successful / len(stars)


def compute_confidence_score(rated_count: int) -> float:
    return min(CONFIDENCE_CAP, rated_count / CONFIDENCE_FULL_SAMPLE)


def compute_criteria_breakdown(criteria: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Map each criterion's dimension to its importance. Later duplicates win."""
    breakdown = {}
    for criterion in criteria or []:
        if not isinstance(criterion, dict):
            continue
        dimension = criterion.get("dimension")
        if dimension:
            breakdown[dimension] = criterion.get("importance")
    return breakdown


def interpret_success_rate(success_rate: float) -> MetricInterpretation:
    if success_rate >= 0.8:
        return MetricInterpretation(
            label="Excellent",
            variant="default",
            message="Your AI is performing well!",
        )
    elif success_rate >= 0.6:
        return MetricInterpretation(
            label="Good",
            variant="secondary",
            message="Good performance with room for improvement.",
            actionable="Review the quality criteria below to identify areas for refinement.",
        )
    elif success_rate >= 0.4:
        return MetricInterpretation(
            label="Needs Attention",
            variant="outline",
            message="Success rate is below target.",
            actionable=(
                "Consider refining your system prompt based on the criteria "
                "and recommendations below."
            ),
        )
    else:
        return MetricInterpretation(
            label="Critical",
            variant="destructive",
            message="Low success rate indicates significant quality issues.",
            actionable=(
                "Review your system prompt, model choice, and temperature settings. "
                "Use the recommendations below as a guide."
            ),
        )


def interpret_confidence(confidence_score: float, rated_count: int) -> MetricInterpretation:
    if confidence_score >= 0.8:
        return MetricInterpretation(
            label="High Confidence",
            variant="default",
            message=f"Based on {rated_count} ratings, these patterns are reliable.",
        )
    elif confidence_score >= 0.5:
        return MetricInterpretation(
            label="Moderate Confidence",
            variant="secondary",
            message=f"Based on {rated_count} ratings.",
            actionable="Add 5-10 more ratings to increase pattern confidence.",
        )
    else:
        return MetricInterpretation(
            label="Low Confidence",
            variant="outline",
            message=f"Only {rated_count} ratings analyzed.",
            actionable="Rate at least 10 outputs for reliable pattern extraction.",
        )
