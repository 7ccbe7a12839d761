"""Error taxonomy shared by the agent loop, providers and connectors."""
from __future__ import annotations

from pydantic import ValidationError as PydanticValidationError


class ParsecError(Exception):
    """Base class for every error raised by the agent core."""


class ConfigurationError(ParsecError):
    """Missing or invalid provider, API key, model, or connector settings."""


class ProviderNotImplementedError(ConfigurationError):
    """The requested provider id has no adapter."""


class ToolValidationError(ParsecError):
    """A tool was called with input it refuses to run (bad SQL, bad timeframe...)."""


class TransportError(ParsecError):
    """A vendor API or connector I/O call failed."""


class ModelCallError(TransportError):
    """The model call itself failed. The loop cannot continue without a response."""


class UnknownToolError(ParsecError):
    """The model asked for a tool the dispatcher does not know."""

    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


def classify_error(exc: BaseException) -> int:
    """Map an exception to the HTTP status the server should answer with."""
    if isinstance(exc, (ConfigurationError, PydanticValidationError)):
        return 400
    return 500
