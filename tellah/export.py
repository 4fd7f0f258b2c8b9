"""
Tellah - Export

Packages the latest extraction into something a team can take away:
  - a JSON or YAML test suite (criteria, golden/negative examples, test cases)
  - a Markdown quality specification

Golden examples are outputs rated 4-5 stars, best first. Negative examples
are outputs rated 1-2 stars, worst first.
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import yaml

from tellah import storage
from tellah.errors import InvalidRequestError, NotFoundError

logger = logging.getLogger(__name__)

JSON = "json"
YAML = "yaml"
MARKDOWN = "markdown"
FORMATS = (JSON, YAML, MARKDOWN)

GOLDEN_MIN_STARS = 4
NEGATIVE_MAX_STARS = 2
MAX_GOLDEN_EXAMPLES = 10
MAX_NEGATIVE_EXAMPLES = 5

# The Markdown spec shows fewer examples than the test suite carries
MARKDOWN_GOLDEN_EXAMPLES = 5
MARKDOWN_ANTI_PATTERNS = 3

MIN_QUALITY_SCORE = 4


@dataclass
class ExportDocument:
    """A rendered export, ready to be served as a download"""
    content: str
    media_type: str
    filename: str


# ─── Example Selection ───────────────────────────────────────────────────────


def select_golden_examples(rated_outputs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    golden = [o for o in rated_outputs if o["stars"] >= GOLDEN_MIN_STARS]
    golden.sort(key=lambda o: o["stars"], reverse=True)
    return golden[:MAX_GOLDEN_EXAMPLES]


def select_negative_examples(rated_outputs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    negative = [o for o in rated_outputs if o["stars"] <= NEGATIVE_MAX_STARS]
    negative.sort(key=lambda o: o["stars"])
    return negative[:MAX_NEGATIVE_EXAMPLES]


def _criteria_list(criteria: Dict[str, Any]) -> List[Dict[str, Any]]:
    items = (criteria or {}).get("criteria")
    if not isinstance(items, list):
        return []
    return [c for c in items if isinstance(c, dict)]


def _string_list(value: Any) -> List[str]:
    """A lone string is one item; anything other than a list is dropped."""
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None and not isinstance(v, (dict, list))]


# ─── Test Suite ──────────────────────────────────────────────────────────────


def build_test_suite(
    project: Dict[str, Any],
    criteria: Dict[str, Any],
    golden_examples: List[Dict[str, Any]],
    negative_examples: List[Dict[str, Any]],
    exported_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Build the test-suite structure shared by the JSON and YAML exports."""
    exported_at = exported_at or datetime.now(timezone.utc)
    model_config = project.get("model_config") or {}
    criteria_items = _criteria_list(criteria)
    dimensions = [c.get("dimension") for c in criteria_items]

    return {
        "project": {
            "name": project["name"],
            "description": project.get("description"),
            "exported_at": exported_at.isoformat(),
        },
        "model_config": {
            "model": model_config.get("model"),
            "temperature": model_config.get("temperature"),
            "system_prompt": model_config.get("system_prompt"),
        },
        "quality_criteria": [
            {
                "dimension": c.get("dimension"),
                "pattern": c.get("pattern"),
                "importance": c.get("importance"),
                "good_characteristics": c.get("good_example"),
                "bad_characteristics": c.get("bad_example"),
            }
            for c in criteria_items
        ],
        "golden_examples": [
            {
                "input": ex["input_text"],
                "output": ex["output_text"],
                "rating": ex["stars"],
                "feedback": ex.get("feedback_text"),
                "tags": ex.get("tags"),
            }
            for ex in golden_examples
        ],
        "negative_examples": [
            {
                "input": ex["input_text"],
                "output": ex["output_text"],
                "rating": ex["stars"],
                "why_failed": ex.get("feedback_text"),
            }
            for ex in negative_examples
        ],
        "test_cases": [
            {
                "name": f"Test: {ex['input_text'][:50]}...",
                "input": ex["input_text"],
                "expected_criteria": list(dimensions),
                "min_quality_score": MIN_QUALITY_SCORE,
            }
            for ex in golden_examples
        ],
    }


# ─── Markdown Quality Spec ───────────────────────────────────────────────────


def build_markdown_doc(
    project: Dict[str, Any],
    criteria: Dict[str, Any],
    golden_examples: List[Dict[str, Any]],
    negative_examples: List[Dict[str, Any]],
    exported_at: Optional[datetime] = None,
) -> str:
    exported_at = exported_at or datetime.now(timezone.utc)
    model_config = project.get("model_config") or {}
    criteria = criteria or {}
    lines: List[str] = []

    lines.append(f"# {project['name']} - Quality Specification")
    lines.append("")
    lines.append(f"**Exported**: {exported_at:%B} {exported_at.day}, {exported_at.year}")
    lines.append("")

    if project.get("description"):
        lines.append("## Overview")
        lines.append("")
        lines.append(project["description"])
        lines.append("")

    lines.append("## Model Configuration")
    lines.append("")
    lines.append(f"- **Model**: {model_config.get('model')}")
    lines.append(f"- **Temperature**: {model_config.get('temperature')}")
    lines.append("")
    if model_config.get("system_prompt"):
        lines.append("### System Prompt")
        lines.append("")
        lines.append("```")
        lines.append(model_config["system_prompt"])
        lines.append("```")
        lines.append("")

    if criteria.get("summary"):
        lines.append("## Quality Summary")
        lines.append("")
        lines.append(str(criteria["summary"]))
        lines.append("")

    criteria_items = _criteria_list(criteria)
    if criteria_items:
        lines.append("## Quality Criteria")
        lines.append("")
        for i, criterion in enumerate(criteria_items, start=1):
            star = " ⭐" if criterion.get("importance") == "high" else ""
            lines.append(f"### {i}. {criterion.get('dimension')}{star}")
            lines.append("")
            lines.append(f"**Pattern**: {criterion.get('pattern')}")
            lines.append("")
            lines.append("**Good Outputs**:")
            lines.append(f"- {criterion.get('good_example')}")
            lines.append("")
            lines.append("**Poor Outputs**:")
            lines.append(f"- {criterion.get('bad_example')}")
            lines.append("")

    if golden_examples:
        lines.append("## Golden Examples")
        lines.append("")
        lines.append("These are high-quality outputs (4-5 stars) that exemplify the desired behavior:")
        lines.append("")
        for i, example in enumerate(golden_examples[:MARKDOWN_GOLDEN_EXAMPLES], start=1):
            lines.append(f"### Example {i} - {example['stars']} ⭐")
            lines.append("")
            lines.append("**Input**:")
            lines.append(f"> {example['input_text']}")
            lines.append("")
            lines.append("**Output**:")
            lines.append("```")
            lines.append(example["output_text"])
            lines.append("```")
            lines.append("")
            if example.get("feedback_text"):
                lines.append(f"**Why This Works**: {example['feedback_text']}")
                lines.append("")
            if example.get("tags"):
                lines.append(f"**Tags**: {', '.join(example['tags'])}")
                lines.append("")

    if negative_examples:
        lines.append("## What to Avoid")
        lines.append("")
        lines.append("These are low-quality outputs (1-2 stars) that demonstrate undesired behavior:")
        lines.append("")
        for i, example in enumerate(negative_examples[:MARKDOWN_ANTI_PATTERNS], start=1):
            lines.append(f"### Anti-Pattern {i}")
            lines.append("")
            lines.append("**Input**:")
            lines.append(f"> {example['input_text']}")
            lines.append("")
            lines.append("**Poor Output**:")
            lines.append("```")
            lines.append(example["output_text"])
            lines.append("```")
            lines.append("")
            if example.get("feedback_text"):
                lines.append(f"**Why This Failed**: {example['feedback_text']}")
                lines.append("")

    recommendations = _string_list(criteria.get("recommendations"))
    if recommendations:
        lines.append("## Implementation Recommendations")
        lines.append("")
        for i, rec in enumerate(recommendations, start=1):
            lines.append(f"{i}. {rec}")
        lines.append("")

    lines.append("---")
    lines.append("")
    lines.append("*Generated by Tellah - Behavioral design tool for AI products*")

    return "\n".join(lines)


# ─── Entry Point ─────────────────────────────────────────────────────────────


def safe_filename(name: str) -> str:
    """Replace every non-alphanumeric character with an underscore."""
    return re.sub(r"[^a-z0-9]", "_", name, flags=re.IGNORECASE)


def export_project(project_id: int, fmt: str = JSON) -> ExportDocument:
    """
    Render the latest extraction for a project.

    Raises:
        InvalidRequestError: unknown format, no extraction yet, or no scenarios
        NotFoundError: the project doesn't exist
    """
    fmt = (fmt or JSON).lower()
    if fmt not in FORMATS:
        raise InvalidRequestError(f"Unknown export format: {fmt} (expected one of {', '.join(FORMATS)})")

    project = storage.get_project(project_id)
    if not project:
        raise NotFoundError(f"Project not found: {project_id}")

    extraction = storage.get_latest_extraction(project_id)
    if not extraction:
        raise InvalidRequestError("No extraction found. Please analyze patterns first.")

    if not storage.list_scenarios(project_id):
        raise InvalidRequestError("No scenarios found for this project")

    rated_outputs = storage.list_rated_outputs(project_id)
    golden = select_golden_examples(rated_outputs)
    negative = select_negative_examples(rated_outputs)
    criteria = extraction.get("criteria")
    if not isinstance(criteria, dict):
        criteria = {}

    base = safe_filename(project["name"])
    logger.info(
        f"Exporting project {project_id} as {fmt}: {len(golden)} golden, {len(negative)} negative examples"
    )

    if fmt == MARKDOWN:
        return ExportDocument(
            content=build_markdown_doc(project, criteria, golden, negative),
            media_type="text/markdown",
            filename=f"{base}_quality_spec.md",
        )

    suite = build_test_suite(project, criteria, golden, negative)
    if fmt == YAML:
        return ExportDocument(
            content=yaml.safe_dump(suite, default_flow_style=False, sort_keys=False, allow_unicode=True),
            media_type="application/x-yaml",
            filename=f"{base}_test_suite.yaml",
        )

    return ExportDocument(
        content=json.dumps(suite, indent=2, ensure_ascii=False),
        media_type="application/json",
        filename=f"{base}_test_suite.json",
    )
