"""
Configuration for the Tellah API.

Endpoints, model names, and environment settings.
Loads from .env file if present (via python-dotenv).
"""
import os

from dotenv import load_dotenv

load_dotenv()

from .system_prompt import EXTRACTION_SYSTEM_PROMPT as _DEFAULT_EXTRACTION_PROMPT

# --- LLM Provider Configuration ---
# Any OpenAI-compatible chat completions endpoint
OPENAI_API_BASE_URL = os.environ.get("OPENAI_API_BASE_URL", "https://api.openai.com")
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")

# Generation defaults, used when a project's model_config leaves them out
DEFAULT_MODEL = os.environ.get("TELLAH_DEFAULT_MODEL", "gpt-4")
DEFAULT_TEMPERATURE = float(os.environ.get("TELLAH_DEFAULT_TEMPERATURE", "0.7"))

# Pattern extraction runs on a fixed model with a low temperature
EXTRACTION_MODEL = os.environ.get("TELLAH_EXTRACTION_MODEL", "gpt-4-turbo")
EXTRACTION_TEMPERATURE = float(os.environ.get("TELLAH_EXTRACTION_TEMPERATURE", "0.3"))

# --- API Configuration ---
API_HOST = os.environ.get("TELLAH_API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("TELLAH_API_PORT", "8000"))

# CORS origins (frontend dev server)
CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

# --- System Prompt ---
# Uses the prompt from system_prompt.py, overridable via env var
EXTRACTION_SYSTEM_PROMPT = os.environ.get("TELLAH_EXTRACTION_PROMPT", _DEFAULT_EXTRACTION_PROMPT)

# Max tokens for LLM responses (0 = let the provider decide)
MAX_TOKENS = int(os.environ.get("TELLAH_MAX_TOKENS", "0"))

# Request timeout (seconds)
REQUEST_TIMEOUT = int(os.environ.get("TELLAH_REQUEST_TIMEOUT", "120"))
