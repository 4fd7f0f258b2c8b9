# Tellah
# Behavioral design tool for AI products: scenarios, ratings, and extracted quality criteria

from tellah.errors import InvalidRequestError, NotFoundError
from tellah.export import ExportDocument, export_project
from tellah.extraction import ExtractionResult, Insights, get_insights, run_extraction
from tellah.generation import GenerationResult, generate_outputs
from tellah.metrics import (
    MetricInterpretation,
    compute_confidence_score,
    compute_success_rate,
    interpret_confidence,
    interpret_success_rate,
)
from tellah.worker import ExtractionRunResult, ExtractionWorker

__version__ = "0.1.0"

__all__ = [
    "InvalidRequestError",
    "NotFoundError",
    "ExportDocument",
    "export_project",
    "ExtractionResult",
    "Insights",
    "get_insights",
    "run_extraction",
    "GenerationResult",
    "generate_outputs",
    "MetricInterpretation",
    "compute_confidence_score",
    "compute_success_rate",
    "interpret_confidence",
    "interpret_success_rate",
    "ExtractionRunResult",
    "ExtractionWorker",
]
