"""
Provider check.

Sends one plain message (no tools) through a provider adapter. Useful for
checking SDK compatibility and API keys.

Usage:
    python provider_check.py <provider> <api-key> [model]

Examples:
    python provider_check.py anthropic sk-ant-xxx claude-sonnet-4-20250514
    python provider_check.py openai sk-xxx gpt-4.1
    python provider_check.py google AIza... gemini-2.5-flash
    python provider_check.py mistral xxx mistral-large-latest
"""
from __future__ import annotations

import asyncio
import sys
from typing import List, Optional

import config as settings
from providers import IMPLEMENTED_PROVIDERS, ProviderConfig, create_provider


def _usage() -> None:
    print("Provider check")
    print("==============\n")
    print("Usage: python provider_check.py <provider> <api-key> [model]\n")
    print("Implemented providers:", ", ".join(IMPLEMENTED_PROVIDERS))


async def check_provider(provider: str, api_key: str, model: Optional[str] = None) -> str:
    config = ProviderConfig(
        provider=provider,
        api_key=api_key,
        model=model or settings.DEFAULT_MODELS[provider],
    )
    print(f"\nTesting {provider} with model {config.model}...")
    print("-" * 50)

    adapter = create_provider(config)
    messages = [{"role": "user", "content": 'Say "Hello from Parsec!" and nothing else.'}]

    print("Sending request...")
    try:
        response = await adapter.chat(messages, [], None)
    finally:
        await adapter.aclose()

    text = adapter.extract_text(response)
    print("\nResponse:", text)

    tool_calls = adapter.extract_tool_calls(response)
    if tool_calls:
        print("Tool calls:", tool_calls)
    return text


def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) < 2:
        _usage()
        return 1

    provider, api_key = args[0], args[1]
    model = args[2] if len(args) > 2 else None

    if provider not in IMPLEMENTED_PROVIDERS:
        print(f'Error: Provider "{provider}" is not implemented.', file=sys.stderr)
        print("Available providers:", ", ".join(IMPLEMENTED_PROVIDERS), file=sys.stderr)
        return 1

    try:
        asyncio.run(check_provider(provider, api_key, model))
    except Exception as e:
        print("\nProvider test failed!", file=sys.stderr)
        print("Error:", e, file=sys.stderr)
        return 1

    print("\nProvider test passed!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
