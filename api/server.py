"""
FastAPI server for Tellah.

Provides endpoints for:
  - Project CRUD (the AI behavior spec: system prompt, model, temperature)
  - Scenarios attached to a project
  - Output generation via the LLM, one output per scenario
  - Star ratings and feedback on outputs
  - Pattern extraction, extraction history and insights
  - Test suite / quality spec export
"""

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware

from .config import API_HOST, API_PORT, CORS_ORIGINS, DEFAULT_MODEL, EXTRACTION_MODEL
from .llm import LLMError
from .schema import (
    CreateRatingRequest,
    CreateScenarioRequest,
    ExtractRequest,
    ExtractionMode,
    ProjectRequest,
)
from tellah import export, extraction, generation, projects, storage
from tellah.errors import InvalidRequestError, NotFoundError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Tellah API",
    description="Behavioral design tool for AI products: scenarios, ratings, and extracted quality criteria",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _http_error(e: Exception, action: str) -> HTTPException:
    """Map an engine exception to the HTTP error the client should see."""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (InvalidRequestError, ValueError)):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, LLMError):
        logger.error(f"{action} LLM error: {e}")
        return HTTPException(status_code=502, detail=f"LLM request failed: {e}")
    logger.error(f"{action} error: {e}", exc_info=True)
    return HTTPException(status_code=500, detail="Internal server error")


def _model_config_dict(request: ProjectRequest) -> Optional[dict]:
    if request.config is None:
        return None
    return request.config.model_dump(exclude_none=True)


# ─── Startup: initialize database ────────────────────────────────────────────

@app.on_event("startup")
async def startup_event():
    storage.init_db()
    logger.info("Database initialized")


# ─── Health Check ─────────────────────────────────────────────────────────────

@app.get("/api/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "default_model": DEFAULT_MODEL,
        "extraction_model": EXTRACTION_MODEL,
    }


# ─── Project Endpoints ───────────────────────────────────────────────────────

@app.post("/api/projects", status_code=201)
async def create_project(request: ProjectRequest):
    """Create a project from a name, optional description and model_config."""
    try:
        project = projects.create_project(
            name=request.name,
            model_config=_model_config_dict(request),
            description=request.description,
        )
        return {"data": project}
    except Exception as e:
        raise _http_error(e, "Create project")


@app.get("/api/projects")
async def list_projects():
    """List all projects, newest first."""
    try:
        return {"data": storage.list_projects()}
    except Exception as e:
        raise _http_error(e, "List projects")


@app.get("/api/projects/{project_id}")
async def get_project(project_id: int):
    """Get a single project with its scenarios."""
    try:
        return {"data": projects.get_project(project_id)}
    except Exception as e:
        raise _http_error(e, "Get project")


@app.patch("/api/projects/{project_id}")
async def update_project(project_id: int, request: ProjectRequest):
    """Update a project's name, description and model_config."""
    try:
        project = projects.update_project(
            project_id,
            name=request.name,
            model_config=_model_config_dict(request),
            description=request.description,
        )
        return {"data": project}
    except Exception as e:
        raise _http_error(e, "Update project")


@app.delete("/api/projects/{project_id}")
async def delete_project(project_id: int):
    """Delete a project with its scenarios, outputs, ratings and extractions."""
    try:
        projects.delete_project(project_id)
        return {"status": "ok", "deleted": project_id}
    except Exception as e:
        raise _http_error(e, "Delete project")


# ─── Scenario Endpoints ──────────────────────────────────────────────────────

@app.post("/api/projects/{project_id}/scenarios", status_code=201)
async def create_scenario(project_id: int, request: CreateScenarioRequest):
    """Append a scenario to a project."""
    try:
        return {"data": projects.add_scenario(project_id, request.input_text)}
    except Exception as e:
        raise _http_error(e, "Create scenario")


@app.get("/api/projects/{project_id}/scenarios")
async def list_scenarios(project_id: int):
    """List a project's scenarios in order."""
    try:
        return {"data": projects.list_scenarios(project_id)}
    except Exception as e:
        raise _http_error(e, "List scenarios")


@app.delete("/api/scenarios/{scenario_id}")
async def delete_scenario(scenario_id: int):
    try:
        projects.delete_scenario(scenario_id)
        return {"status": "ok", "deleted": scenario_id}
    except Exception as e:
        raise _http_error(e, "Delete scenario")


# ─── Generation / Output Endpoints ───────────────────────────────────────────

@app.post("/api/projects/{project_id}/generate")
async def generate_outputs(project_id: int):
    """
    Generate one output per scenario using the project's model_config.
    Per-scenario failures are reported in `errors` without failing the request.
    """
    try:
        result = await generation.generate_outputs(project_id)
        return result.to_dict()
    except Exception as e:
        raise _http_error(e, "Generate outputs")


@app.get("/api/projects/{project_id}/outputs")
async def list_outputs(project_id: int):
    """Scenarios with their latest output and its ratings."""
    try:
        return {"data": generation.list_project_outputs(project_id)}
    except Exception as e:
        raise _http_error(e, "List outputs")


@app.get("/api/outputs/{output_id}")
async def get_output(output_id: int):
    output = storage.get_output(output_id)
    if not output:
        raise HTTPException(status_code=404, detail=f"Output not found: {output_id}")
    scenario = storage.get_scenario(output["scenario_id"])
    return {"data": {**output, "scenario": scenario, "ratings": storage.list_ratings(output_id)}}


# ─── Rating Endpoints ────────────────────────────────────────────────────────

@app.post("/api/outputs/{output_id}/ratings", status_code=201)
async def create_rating(output_id: int, request: CreateRatingRequest):
    """Rate an output 1-5 stars with optional feedback and tags."""
    try:
        rating = projects.rate_output(
            output_id,
            stars=request.stars,
            feedback_text=request.feedback_text,
            tags=request.tags,
        )
        return {"data": rating}
    except Exception as e:
        raise _http_error(e, "Create rating")


@app.get("/api/outputs/{output_id}/ratings")
async def list_ratings(output_id: int):
    """List an output's ratings, newest first."""
    try:
        return {"data": projects.list_ratings(output_id)}
    except Exception as e:
        raise _http_error(e, "List ratings")


# ─── Extraction Endpoints ────────────────────────────────────────────────────

@app.post("/api/projects/{project_id}/extract")
async def extract_patterns(project_id: int, request: ExtractRequest = None):
    """
    Run pattern extraction over the project's rated outputs.
    By default only ratings since the last extraction are analyzed.
    """
    mode = request.mode if request else ExtractionMode.INCREMENTAL
    try:
        result = await extraction.run_extraction(project_id, mode=mode.value)
        return result.to_dict()
    except Exception as e:
        raise _http_error(e, "Extract patterns")


@app.get("/api/projects/{project_id}/extractions")
async def list_extractions(project_id: int):
    """Extraction history with success rate and confidence per snapshot."""
    try:
        return {"data": extraction.list_extraction_history(project_id)}
    except Exception as e:
        raise _http_error(e, "List extractions")


@app.get("/api/projects/{project_id}/insights")
async def get_insights(project_id: int, extraction_id: Optional[int] = None):
    """Latest (or a chosen) extraction with its metric and interpretations."""
    try:
        return {"data": extraction.get_insights(project_id, extraction_id).to_dict()}
    except Exception as e:
        raise _http_error(e, "Get insights")


# ─── Export Endpoint ─────────────────────────────────────────────────────────

@app.get("/api/projects/{project_id}/export")
async def export_project(project_id: int, format: str = "json"):
    """Download the latest criteria as a JSON/YAML test suite or a Markdown spec."""
    try:
        doc = export.export_project(project_id, format)
    except Exception as e:
        raise _http_error(e, "Export")

    return Response(
        content=doc.content,
        media_type=doc.media_type,
        headers={"Content-Disposition": f'attachment; filename="{doc.filename}"'},
    )


# ─── Server Entry Point ──────────────────────────────────────────────────────

def start():
    """Entry point for running the server."""
    import uvicorn

    logger.info(f"Starting Tellah API on {API_HOST}:{API_PORT}")
    logger.info(f"Default model: {DEFAULT_MODEL} | Extraction model: {EXTRACTION_MODEL}")
    uvicorn.run(
        "api.server:app",
        host=API_HOST,
        port=API_PORT,
        reload=True,
    )


if __name__ == "__main__":
    start()
