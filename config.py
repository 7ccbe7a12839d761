from __future__ import annotations
import os
import tempfile
from pathlib import Path

from dotenv import load_dotenv

# Load env from a local .env (works whether launched from the project dir or elsewhere)
load_dotenv()
load_dotenv(dotenv_path=Path(__file__).parent / ".env", override=False)

# ------------------------------------------------------------------------------
# Server
# ------------------------------------------------------------------------------

HOST = os.getenv("PARSEC_HOST", "127.0.0.1")
PORT = int(os.getenv("PARSEC_PORT", "3000"))
TRANSPORT = os.getenv("PARSEC_TRANSPORT", "streamable-http")
LOG_LEVEL = os.getenv("PARSEC_LOG_LEVEL", "INFO").upper()

# ------------------------------------------------------------------------------
# Agent loop
# ------------------------------------------------------------------------------

MAX_ITERATIONS = int(os.getenv("PARSEC_MAX_ITERATIONS", "10"))
MAX_TOKENS = int(os.getenv("PARSEC_MAX_TOKENS", "4096"))

# Only used by provider_check.py; requests always name their model explicitly.
DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-20250514",
    "openai": "gpt-4.1",
    "google": "gemini-2.5-flash",
    "mistral": "mistral-large-latest",
}

# ------------------------------------------------------------------------------
# Connectors
# ------------------------------------------------------------------------------

DB_ROW_LIMIT = int(os.getenv("PARSEC_DB_ROW_LIMIT", "500"))
DB_STATEMENT_TIMEOUT_MS = int(os.getenv("PARSEC_DB_STATEMENT_TIMEOUT_MS", "30000"))
DB_CONNECT_TIMEOUT_SECONDS = int(os.getenv("PARSEC_DB_CONNECT_TIMEOUT_SECONDS", "10"))

REPO_CACHE_DIR = Path(
    os.getenv("PARSEC_REPO_CACHE_DIR", str(Path(tempfile.gettempdir()) / "parsec-repos"))
)
GIT_TIMEOUT_SECONDS = float(os.getenv("PARSEC_GIT_TIMEOUT_SECONDS", "120"))

LOGS_TIMEOUT_SECONDS = float(os.getenv("PARSEC_LOGS_TIMEOUT_SECONDS", "20"))
LOGS_MAX_TIMEFRAME_DAYS = int(os.getenv("PARSEC_LOGS_MAX_TIMEFRAME_DAYS", "30"))
