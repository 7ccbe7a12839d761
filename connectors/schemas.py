from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ------------------------------------------------------------------------------
# Tool argument schemas
# ------------------------------------------------------------------------------

class QueryDatabaseArgs(BaseModel):
    query: str = Field(..., description="SQL SELECT query")


class SearchCodebaseArgs(BaseModel):
    pattern: Optional[str] = Field(None, description="Search pattern (glob)")
    content_search: Optional[str] = Field(None, description="Search within file contents")


class FetchLogsArgs(BaseModel):
    timeframe: str = Field("1h", description="Time range to fetch, e.g. '1h', '24h', '7d'")
    level: Optional[Literal["error", "warn", "info", "debug"]] = None
    search: Optional[str] = Field(None, description="Filter logs containing this text")


# ------------------------------------------------------------------------------
# Canonical tool definitions (Anthropic format), fixed at import
# ------------------------------------------------------------------------------

QUERY_DATABASE = {
    "name": "query_database",
    "description": "Execute a read-only SQL query against the connected database",
    "input_schema": {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "SQL SELECT query"},
        },
        "required": ["query"],
    },
}

SEARCH_CODEBASE = {
    "name": "search_codebase",
    "description": "Search for files or code patterns in the connected codebase",
    "input_schema": {
        "type": "object",
        "properties": {
            "pattern": {"type": "string", "description": "Search pattern (glob)"},
            "content_search": {"type": "string", "description": "Search within file contents"},
        },
    },
}

FETCH_LOGS = {
    "name": "fetch_logs",
    "description": "Retrieve server logs from the connected logging provider",
    "input_schema": {
        "type": "object",
        "properties": {
            "timeframe": {"type": "string", "description": "Time range to fetch, e.g. '1h', '24h', '7d'"},
            "level": {"type": "string", "enum": ["error", "warn", "info", "debug"]},
            "search": {"type": "string", "description": "Filter logs containing this text"},
        },
    },
}

TOOL_DEFINITIONS = [QUERY_DATABASE, SEARCH_CODEBASE, FETCH_LOGS]


# ------------------------------------------------------------------------------
# Connector settings (as sent by the front end)
# ------------------------------------------------------------------------------

class _ConnectorModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class DatabaseConnector(_ConnectorModel):
    type: Optional[str] = Field(None, description="Database type, e.g. 'postgres'")
    connection_string: Optional[str] = Field(None, alias="connectionString")


class CodebaseConnector(_ConnectorModel):
    source: Optional[str] = Field(None, description="'github-url', 'local', 'github-token', 'trajan'")
    url: Optional[str] = None
    path: Optional[str] = None


class LogsConnector(_ConnectorModel):
    """Resolved single-provider log settings."""
    provider: Optional[str] = None
    api_key: Optional[str] = Field(None, alias="apiKey")
    project_id: Optional[str] = Field(None, alias="projectId")
    enabled: bool = True


class Connectors(_ConnectorModel):
    database: Optional[DatabaseConnector] = None
    codebase: Optional[CodebaseConnector] = None
    # Either {provider, apiKey, projectId} or {vercel: {enabled, apiKey, projectId}, ...}
    logs: Optional[Dict[str, Any]] = None
