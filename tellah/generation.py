"""
Tellah - Output Generation

Runs a project's behavior spec against each of its scenarios:
  1. Load the project's model_config (model, temperature, system prompt)
  2. Call the completion endpoint once per scenario, in scenario order
  3. Store each output verbatim with a snapshot of the config and token usage

A failure on one scenario is recorded and the loop moves on.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from api import config
from api.llm import generate_completion
from tellah import storage
from tellah.errors import InvalidRequestError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    """Outputs produced by one generation pass"""
    total: int
    outputs: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def generated(self) -> int:
        return len(self.outputs)

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "success": True,
            "generated": self.generated,
            "total": self.total,
            "outputs": self.outputs,
        }
        if self.errors:
            d["errors"] = self.errors
        return d


def resolve_model_settings(model_config: Dict[str, Any]) -> Dict[str, Any]:
    """Fill in default model and temperature; a temperature of 0 is kept."""
    model_config = model_config or {}
    temperature = model_config.get("temperature")
    return {
        "model": model_config.get("model") or config.DEFAULT_MODEL,
        "temperature": config.DEFAULT_TEMPERATURE if temperature is None else temperature,
        "system_prompt": model_config.get("system_prompt"),
    }


async def generate_outputs(project_id: int) -> GenerationResult:
    """
    Generate one output per scenario for a project.

    Raises:
        NotFoundError: the project doesn't exist
        InvalidRequestError: the project has no scenarios
    """
    project = storage.get_project(project_id)
    if not project:
        raise NotFoundError(f"Project not found: {project_id}")

    scenarios = storage.list_scenarios(project_id)
    if not scenarios:
        raise InvalidRequestError("No scenarios found for this project")

    settings = resolve_model_settings(project.get("model_config"))
    result = GenerationResult(total=len(scenarios))

    for scenario in scenarios:
        try:
            completion = await generate_completion(
                input_text=scenario["input_text"],
                model=settings["model"],
                temperature=settings["temperature"],
                system_prompt=settings["system_prompt"],
            )
        except Exception as e:
            logger.error(f"Error generating output for scenario {scenario['id']}: {e}")
            result.errors.append({"scenario_id": scenario["id"], "error": str(e) or "Generation failed"})
            continue

        snapshot = {
            **settings,
            "completion_tokens": completion.usage.get("completion_tokens"),
            "prompt_tokens": completion.usage.get("prompt_tokens"),
            "total_tokens": completion.usage.get("total_tokens"),
        }

        try:
            output = storage.create_output(scenario["id"], completion.text, snapshot)
        except Exception as e:
            logger.error(f"Failed to save output for scenario {scenario['id']}: {e}", exc_info=True)
            result.errors.append({"scenario_id": scenario["id"], "error": "Failed to save output"})
            continue

        result.outputs.append(output)

    logger.info(
        f"Generated {result.generated}/{result.total} outputs for project {project_id}"
        + (f" ({len(result.errors)} errors)" if result.errors else "")
    )
    return result


def list_project_outputs(project_id: int) -> Dict[str, Any]:
    """
    Each scenario with its most recent output and that output's ratings,
    plus how many scenarios have an output and how many of those are rated.
    """
    if not storage.get_project(project_id):
        raise NotFoundError(f"Project not found: {project_id}")

    scenarios = []
    total_outputs = 0
    rated_outputs = 0

    for scenario in storage.list_scenarios(project_id):
        outputs = storage.list_outputs(scenario["id"])
        latest = outputs[-1] if outputs else None
        if latest:
            latest = {**latest, "ratings": storage.list_ratings(latest["id"])}
            total_outputs += 1
            if latest["ratings"]:
                rated_outputs += 1

        scenarios.append({
            **scenario,
            "output_count": len(outputs),
            "latest_output": latest,
        })

    return {
        "scenarios": scenarios,
        "total_outputs": total_outputs,
        "rated_outputs": rated_outputs,
    }
