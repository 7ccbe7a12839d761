"""Log retrieval from hosted logging providers (currently Vercel)."""
from __future__ import annotations

import asyncio
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

import config as settings
from errors import ConfigurationError, ToolValidationError, TransportError
from .schemas import FetchLogsArgs, LogsConnector

log = logging.getLogger("parsec.connectors")

MAX_ENTRIES = 200
MAX_MESSAGE_LENGTH = 2000

VERCEL_LOGS_URL = "https://api.vercel.com/v3/runtime/logs"

_TIMEFRAME_RE = re.compile(r"^(\d+)(m|h|d)$")
_UNIT_MS = {"m": 60_000, "h": 3_600_000, "d": 86_400_000}


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------

def parse_timeframe(
    timeframe: Optional[str] = "1h",
    now_ms: Optional[int] = None,
    max_days: Optional[int] = None,
) -> Tuple[int, int]:
    """Turn '15m' / '24h' / '7d' into an absolute (start_ms, end_ms) window ending now."""
    max_days = settings.LOGS_MAX_TIMEFRAME_DAYS if max_days is None else max_days
    value = "1h" if timeframe is None else str(timeframe).strip()
    match = _TIMEFRAME_RE.match(value)
    if not match:
        raise ToolValidationError(f'Invalid timeframe: "{value}". Use format like "1h", "24h", "7d"')

    amount, unit = match.groups()
    duration_ms = int(amount) * _UNIT_MS[unit]
    if duration_ms <= 0:
        raise ToolValidationError("Timeframe must be greater than zero")
    if duration_ms > max_days * _UNIT_MS["d"]:
        raise ToolValidationError(f"Timeframe too large. Maximum is {max_days}d")

    end_ms = int(time.time() * 1000) if now_ms is None else now_ms
    return end_ms - duration_ms, end_ms


def validate_config(config: Optional[LogsConnector]) -> LogsConnector:
    if config is None or not config.provider:
        raise ConfigurationError("No log provider configured: set it in the Connectors view")
    if not config.api_key:
        raise ConfigurationError(f"Missing {config.provider} API key: configure it in the Connectors view")
    if not config.project_id:
        raise ConfigurationError(f"Missing {config.provider} project ID: configure it in the Connectors view")
    return config


def normalize_timestamp(value: Any) -> Optional[str]:
    """Epoch ms / epoch s / ISO string -> ISO-8601 UTC ('...Z'). Anything else -> None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            seconds = value / 1000 if abs(value) >= 1e11 else value
            moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
        elif isinstance(value, str):
            text = value.strip()
            if re.fullmatch(r"-?\d+(\.\d+)?", text):
                return normalize_timestamp(float(text))
            moment = datetime.fromisoformat(text.replace("Z", "+00:00"))
            if moment.tzinfo is None:
                moment = moment.replace(tzinfo=timezone.utc)
        else:
            return None
    except (ValueError, OverflowError, OSError):
        return None
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _sort_key(entry: Dict[str, Any]) -> float:
    stamp = normalize_timestamp(entry.get("timestamp"))
    if stamp is None:
        return 0.0
    return datetime.fromisoformat(stamp.replace("Z", "+00:00")).timestamp()


def _as_entries(payload: Any) -> List[Dict[str, Any]]:
    """Providers answer with a list, or with the list under 'logs' / 'data'."""
    if isinstance(payload, list):
        entries = payload
    elif isinstance(payload, dict):
        entries = payload.get("logs") or payload.get("data") or []
    else:
        entries = []
    return [e for e in entries if isinstance(e, dict)]


# ------------------------------------------------------------------------------
# Provider fetchers
# ------------------------------------------------------------------------------

def fetch_vercel_logs(config: LogsConnector, start_ms: int, end_ms: int) -> Any:
    """GET /v3/runtime/logs for one project."""
    params = {
        "projectId": config.project_id,
        "startDate": str(start_ms),
        "endDate": str(end_ms),
    }
    r = requests.get(
        VERCEL_LOGS_URL,
        params=params,
        headers={"Authorization": f"Bearer {config.api_key}", "Accept": "application/json"},
        timeout=settings.LOGS_TIMEOUT_SECONDS,
    )
    try:
        r.raise_for_status()
    except requests.HTTPError as e:
        body = (r.text or "")[:2000]
        redacted = body.replace(config.api_key, "***REDACTED***")
        raise TransportError(f"Vercel API error ({r.status_code}): {redacted}") from e
    if not r.text:
        return []
    try:
        return r.json()
    except ValueError as e:
        raise TransportError("Vercel API returned a non-JSON body") from e


LOG_FETCHERS: Dict[str, Callable[[LogsConnector, int, int], Any]] = {
    "vercel": fetch_vercel_logs,
}


# ------------------------------------------------------------------------------
# Tool entry point
# ------------------------------------------------------------------------------

def collect_logs(args: FetchLogsArgs, config: Optional[LogsConnector]) -> Dict[str, Any]:
    config = validate_config(config)

    fetcher = LOG_FETCHERS.get(config.provider)
    if fetcher is None:
        raise ConfigurationError(
            f'Unsupported log provider: "{config.provider}". Supported: {", ".join(LOG_FETCHERS)}'
        )

    start_ms, end_ms = parse_timeframe(args.timeframe)
    try:
        payload = fetcher(config, start_ms, end_ms)
    except requests.RequestException as e:
        raise TransportError(f"{config.provider} request failed: {e}") from e

    entries = _as_entries(payload)

    if args.level:
        entries = [e for e in entries if e.get("level") == args.level]

    if args.search:
        needle = args.search.lower()
        entries = [e for e in entries if needle in str(e.get("message") or "").lower()]

    entries.sort(key=_sort_key, reverse=True)

    total = len(entries)
    entries = entries[:MAX_ENTRIES]

    formatted = [
        {
            "timestamp": normalize_timestamp(e.get("timestamp")),
            "level": e.get("level") or "info",
            "message": str(e.get("message") or "")[:MAX_MESSAGE_LENGTH],
            "source": e.get("source"),
            "statusCode": e.get("statusCode"),
            "requestId": e.get("requestId"),
        }
        for e in entries
    ]

    return {
        "logs": formatted,
        "count": len(formatted),
        "total": total,
        "truncated": total > MAX_ENTRIES,
        "provider": config.provider,
    }


async def execute(args: FetchLogsArgs, config: Optional[LogsConnector]) -> Dict[str, Any]:
    log.info("Fetching logs timeframe=%s level=%s", args.timeframe, args.level)
    # requests is blocking; run it in a worker thread
    return await asyncio.to_thread(collect_logs, args, config)
