"""
Pydantic schemas for the Tellah API.

Request body fields are all Optional; tellah.projects does the required-field
checks and raises InvalidRequestError (400).
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ExtractionMode(str, Enum):
    INCREMENTAL = "incremental"
    FULL = "full"


# --- Project schemas ---

class ModelConfig(BaseModel):
    """How outputs are generated for a project."""
    model_config = ConfigDict(extra="allow", protected_namespaces=())

    model: Optional[str] = Field(default=None, description="Chat completion model name, e.g. 'gpt-4'")
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    system_prompt: Optional[str] = Field(default=None, description="The AI behavior spec under test")


class ProjectRequest(BaseModel):
    """Request body for POST /api/projects and PATCH /api/projects/{id}."""
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    name: Optional[str] = None
    description: Optional[str] = None
    config: Optional[ModelConfig] = Field(default=None, alias="model_config")


# --- Scenario / rating schemas ---

class CreateScenarioRequest(BaseModel):
    """Request body for POST /api/projects/{id}/scenarios."""
    input_text: Optional[str] = Field(default=None, description="The user message sent to the model")


class CreateRatingRequest(BaseModel):
    """Request body for POST /api/outputs/{id}/ratings."""
    stars: Optional[int] = Field(default=None, description="1-5 star rating")
    feedback_text: Optional[str] = None
    tags: Optional[List[str]] = None


# --- Extraction schemas ---

class ExtractRequest(BaseModel):
    """Request body for POST /api/projects/{id}/extract."""
    mode: ExtractionMode = Field(
        default=ExtractionMode.INCREMENTAL,
        description="'incremental' analyzes ratings since the last extraction; 'full' re-analyzes all",
    )


class CompletionResult(BaseModel):
    """Text and token usage from a single chat completion."""
    text: str = ""
    usage: Dict[str, Any] = Field(default_factory=dict)
