"""
Tellah - Projects, Scenarios and Ratings

Thin validation in front of storage. Everything here is a null/range check
followed by a straight database call.
"""

import logging
from typing import Any, Dict, List, Optional

from tellah import storage
from tellah.errors import InvalidRequestError, NotFoundError

logger = logging.getLogger(__name__)

MIN_STARS = 1
MAX_STARS = 5


# ─── Projects ─────────────────────────────────────────────────────────────────


def create_project(
    name: Optional[str],
    model_config: Optional[Dict[str, Any]],
    description: Optional[str] = None,
) -> Dict[str, Any]:
    if not name or not model_config:
        raise InvalidRequestError("Name and model_config are required")
    if not model_config.get("model"):
        raise InvalidRequestError("model_config.model is required")

    project = storage.create_project(name, model_config, description=description or None)
    logger.info(f"Created project {project['id']} ({name})")
    return project


def get_project(project_id: int) -> Dict[str, Any]:
    """A project with its scenarios."""
    project = storage.get_project(project_id)
    if not project:
        raise NotFoundError(f"Project not found: {project_id}")
    return {**project, "scenarios": storage.list_scenarios(project_id)}


def update_project(
    project_id: int,
    name: Optional[str],
    model_config: Optional[Dict[str, Any]],
    description: Optional[str] = None,
) -> Dict[str, Any]:
    if not name or not (model_config or {}).get("system_prompt"):
        raise InvalidRequestError("Name and system prompt are required")

    updated = storage.update_project(project_id, name, description, model_config)
    if not updated:
        raise NotFoundError(f"Project not found: {project_id}")
    return updated


def delete_project(project_id: int) -> None:
    if not storage.delete_project(project_id):
        raise NotFoundError(f"Project not found: {project_id}")
    logger.info(f"Deleted project {project_id}")


# ─── Scenarios ────────────────────────────────────────────────────────────────


def add_scenario(project_id: int, input_text: Optional[str]) -> Dict[str, Any]:
    if not input_text:
        raise InvalidRequestError("input_text is required")
    if not storage.get_project(project_id):
        raise NotFoundError(f"Project not found: {project_id}")
    return storage.create_scenario(project_id, input_text)


def list_scenarios(project_id: int) -> List[Dict[str, Any]]:
    if not storage.get_project(project_id):
        raise NotFoundError(f"Project not found: {project_id}")
    return storage.list_scenarios(project_id)


def delete_scenario(scenario_id: int) -> None:
    if not storage.delete_scenario(scenario_id):
        raise NotFoundError(f"Scenario not found: {scenario_id}")


# ─── Ratings ──────────────────────────────────────────────────────────────────


def rate_output(
    output_id: int,
    stars: Optional[int],
    feedback_text: Optional[str] = None,
    tags: Optional[List[str]] = None,
) -> Dict[str, Any]:
    # bool is an int subclass; True must not pass as a 1-star rating
    if (
        stars is None
        or isinstance(stars, bool)
        or not isinstance(stars, int)
        or not MIN_STARS <= stars <= MAX_STARS
    ):
        raise InvalidRequestError(f"Valid star rating ({MIN_STARS}-{MAX_STARS}) is required")
    if not storage.get_output(output_id):
        raise NotFoundError(f"Output not found: {output_id}")
    return storage.create_rating(output_id, stars, feedback_text=feedback_text, tags=tags)


def list_ratings(output_id: int) -> List[Dict[str, Any]]:
    return storage.list_ratings(output_id)
