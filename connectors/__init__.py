"""Tool dispatcher: maps a tool name to its executor and connector settings."""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from errors import ToolValidationError, UnknownToolError
from . import codebase, database, logs
from .repo_cache import RepoCache
from .schemas import (
    TOOL_DEFINITIONS,
    CodebaseConnector,
    Connectors,
    FetchLogsArgs,
    LogsConnector,
    QueryDatabaseArgs,
    SearchCodebaseArgs,
)

log = logging.getLogger("parsec.connectors")

# One clone cache per process; every dispatcher shares it unless told otherwise.
default_repo_cache = RepoCache()


def resolve_logs_config(logs_config: Optional[Dict[str, Any]]) -> Optional[LogsConnector]:
    """Pick the log provider to use.

    Accepts the flat form ``{provider, apiKey, projectId}`` or the per-provider
    form ``{vercel: {enabled, apiKey, projectId}, ...}``, in which case the
    first enabled provider wins. ``None`` when nothing is enabled.
    """
    if not isinstance(logs_config, dict):
        return None

    if logs_config.get("provider"):
        return LogsConnector.model_validate(logs_config)

    for provider_name, provider_config in logs_config.items():
        if isinstance(provider_config, dict) and provider_config.get("enabled"):
            return LogsConnector.model_validate({**provider_config, "provider": provider_name})
    return None


def resolve_codebase_config(codebase_config: Optional[CodebaseConnector]) -> Optional[CodebaseConnector]:
    """Only remote URLs and local paths are searchable; other sources read as not configured."""
    if codebase_config is None:
        return None
    source = codebase_config.source
    if source == "github-url" and codebase_config.url:
        return CodebaseConnector(source=source, url=codebase_config.url)
    if source in (None, "local") and codebase_config.path:
        return CodebaseConnector(source="local", path=codebase_config.path)
    # github-token, trajan, ... are not implemented yet
    return None


class ToolDispatcher:
    """Executes canonical tools against one request's connectors."""

    definitions = TOOL_DEFINITIONS

    def __init__(self, connectors: Connectors, repo_cache: Optional[RepoCache] = None):
        self.connectors = connectors
        self.repo_cache = repo_cache or default_repo_cache

        self._routes: Dict[str, Tuple[Type[BaseModel], Callable[..., Awaitable[Any]], Any]] = {
            "query_database": (
                QueryDatabaseArgs,
                database.execute,
                connectors.database,
            ),
            "search_codebase": (
                SearchCodebaseArgs,
                self._search_codebase,
                resolve_codebase_config(connectors.codebase),
            ),
            "fetch_logs": (
                FetchLogsArgs,
                logs.execute,
                resolve_logs_config(connectors.logs),
            ),
        }

    async def _search_codebase(self, args: SearchCodebaseArgs, config: Optional[CodebaseConnector]) -> Any:
        return await codebase.execute(args, config, self.repo_cache)

    async def execute(self, name: str, tool_input: Optional[Dict[str, Any]]) -> Any:
        """Run tool *name*; raises UnknownToolError for names we do not serve."""
        route = self._routes.get(name)
        if route is None:
            raise UnknownToolError(name)

        args_model, executor, connector_config = route
        try:
            args = args_model.model_validate(tool_input or {})
        except ValidationError as e:
            raise ToolValidationError(f"Invalid input for {name}: {e.errors(include_url=False)}") from e

        return await executor(args, connector_config)


__all__ = [
    "TOOL_DEFINITIONS",
    "ToolDispatcher",
    "RepoCache",
    "default_repo_cache",
    "resolve_codebase_config",
    "resolve_logs_config",
]
