from __future__ import annotations
import sys, logging
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from mcp.server.fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

import config as settings
from agent_loop import LoopResult, run_agent_loop
from connectors import TOOL_DEFINITIONS, RepoCache, ToolDispatcher
from connectors.schemas import Connectors
from errors import classify_error
from providers import IMPLEMENTED_PROVIDERS, ProviderConfig, create_provider

# Log to STDERR only (stdio transport cannot receive stdout noise)
logging.basicConfig(stream=sys.stderr, level=getattr(logging, settings.LOG_LEVEL, logging.INFO))
log = logging.getLogger("parsec")

mcp = FastMCP("parsec", host=settings.HOST, port=settings.PORT)

# ------------------------------------------------------------------------------
# Schemas
# ------------------------------------------------------------------------------

class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: Union[str, List[Dict[str, Any]]]

class AgentConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    provider: str = Field("anthropic", description="anthropic | openai | mistral | google")
    api_key: str = Field(..., alias="apiKey", min_length=1)
    model: str = Field(..., min_length=1)
    system_prompt: Optional[str] = Field(None, alias="systemPrompt")

class ChatRequest(BaseModel):
    message: Optional[str] = Field(None, description="New user message")
    messages: Optional[List[ChatMessage]] = Field(None, description="Prior turns to replay")
    config: AgentConfig
    connectors: Connectors

    @model_validator(mode="after")
    def _needs_a_message(self) -> "ChatRequest":
        if not self.message and not self.messages:
            raise ValueError("message or messages is required")
        return self

    def conversation(self) -> List[Dict[str, Any]]:
        """Replayed turns (if any) followed by the new message (if any)."""
        turns = [m.model_dump() for m in self.messages or []]
        if self.message:
            turns.append({"role": "user", "content": self.message})
        return turns


def _describe(e: Exception) -> str:
    if isinstance(e, ValidationError):
        problems = []
        for err in e.errors(include_url=False):
            where = ".".join(str(p) for p in err.get("loc", ())) or "request"
            problems.append(f"{where}: {err.get('msg')}")
        return "Invalid request: " + "; ".join(problems)
    return str(e)

# ------------------------------------------------------------------------------
# Chat
# ------------------------------------------------------------------------------

async def run_chat(request: ChatRequest, repo_cache: Optional[RepoCache] = None) -> LoopResult:
    provider_config = ProviderConfig(
        provider=request.config.provider,
        api_key=request.config.api_key,
        model=request.config.model,
        system_prompt=request.config.system_prompt,
    )
    adapter = create_provider(provider_config)
    dispatcher = ToolDispatcher(request.connectors, repo_cache)

    try:
        return await run_agent_loop(
            adapter,
            request.conversation(),
            dispatcher.execute,
            tools=TOOL_DEFINITIONS,
            system_prompt=provider_config.system_prompt,
            max_iterations=settings.MAX_ITERATIONS,
        )
    finally:
        await adapter.aclose()

async def handle_chat(payload: Any, repo_cache: Optional[RepoCache] = None) -> Tuple[int, Dict[str, Any]]:
    """Validate, run the agent, and classify failures. Returns (status, body)."""
    try:
        request = ChatRequest.model_validate(payload)
        log.info(
            "Chat request: provider=%s model=%s turns=%d",
            request.config.provider, request.config.model, len(request.conversation()),
        )
        result = await run_chat(request, repo_cache)
    except Exception as e:
        status = classify_error(e)
        if status >= 500:
            log.error("Chat request failed", exc_info=True)
        else:
            log.warning("Rejected chat request: %s", _describe(e))
        return status, {"error": _describe(e)}

    log.info("Chat finished: state=%s iterations=%d tool_calls=%d",
             result.state.value, result.iterations, len(result.tool_calls))
    return 200, result.to_response()

# ------------------------------------------------------------------------------
# HTTP route + MCP tools
# ------------------------------------------------------------------------------

@mcp.custom_route("/api/chat", methods=["POST"])
async def chat_route(request: Request) -> JSONResponse:
    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse({"error": "Request body must be JSON"}, status_code=400)
    status, body = await handle_chat(payload)
    return JSONResponse(body, status_code=status)

@mcp.tool()
async def chat(args: ChatRequest) -> Any:
    """Ask the agent a question; it may query the database, search code and read logs before answering."""
    _, body = await handle_chat(args.model_dump(by_alias=True))
    return body

@mcp.tool()
def list_providers() -> Any:
    """List the LLM providers the agent can drive."""
    return {"providers": list(IMPLEMENTED_PROVIDERS)}


def main() -> None:
    log.info("Parsec listening on %s:%d (%s)", settings.HOST, settings.PORT, settings.TRANSPORT)
    mcp.run(transport=settings.TRANSPORT)


if __name__ == "__main__":
    main()
