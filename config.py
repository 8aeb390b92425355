import os
from pathlib import Path

# Define the root directory of the project
ROOT_DIR = Path(__file__).resolve().parent

# Where exported workflow files land by default
EXPORT_DIR = Path(os.environ.get("FLOWCANVAS_EXPORT_DIR", ROOT_DIR / "exports"))

# Backend (execution engine) connection
API_BASE = os.environ.get("FLOWCANVAS_API_URL", "http://localhost:8000").rstrip("/")
REQUEST_TIMEOUT = float(os.environ.get("FLOWCANVAS_REQUEST_TIMEOUT", "15"))
EXECUTE_TIMEOUT = float(os.environ.get("FLOWCANVAS_EXECUTE_TIMEOUT", "300"))

# Compiler tables - Registry keys
NODE_TYPE_ALIASES = {
    "QueryNode": "querynode",
    "ResponseNode": "responsenode",
    "LanguageModelNode": "languagemodelnode",
}

# (registry key, parameter) -> literal used when a required value is missing
PARAMETER_FALLBACKS = {
    ("querynode", "query"): "Hi there!",
    ("languagemodelnode", "service"): "openai",
}

ENTRY_CATEGORY = "querynode"
TERMINAL_CATEGORY = "responsenode"

# Edge handles look like "output-result" / "input-query" on the canvas
SOURCE_HANDLE_PREFIX = "output-"
TARGET_HANDLE_PREFIX = "input-"
DEFAULT_SOURCE_PORT = "result"
DEFAULT_TARGET_PORT = "query"

# Log buffer size served at /api/logs
LOG_BUFFER_SIZE = 100

# Local canvas API server
CANVAS_HOST = os.environ.get("FLOWCANVAS_HOST", "0.0.0.0")
CANVAS_PORT = int(os.environ.get("FLOWCANVAS_PORT", "8001"))
