"""Local working copies of remote repositories, shared by every request in the process."""
from __future__ import annotations

import asyncio
import hashlib
import logging
import re
import shutil
from pathlib import Path
from typing import Dict, Optional

import config as settings
from errors import ConfigurationError, TransportError

log = logging.getLogger("parsec.connectors")

_PROTOCOL_RE = re.compile(r"^(?:[a-z][a-z0-9+.-]*://)", re.IGNORECASE)
_SCP_RE = re.compile(r"^[^/@]+@([^:/]+):(.+)$")  # git@github.com:org/repo


def normalize_repo_url(url: str) -> str:
    """Reduce a repository URL to ``host/owner/repo``.

    Strips protocol, user info, ``.git`` suffix and trailing slashes, so
    ``https://github.com/a/b.git`` and ``git@github.com:a/b`` share a cache entry.
    """
    value = (url or "").strip()
    if not value:
        raise ConfigurationError("Repository URL is empty")

    scp = _SCP_RE.match(value)
    if scp and "://" not in value:
        value = f"{scp.group(1)}/{scp.group(2)}"
    value = _PROTOCOL_RE.sub("", value)
    value = value.split("@", 1)[-1] if "@" in value.split("/", 1)[0] else value
    value = value.rstrip("/")
    if value.endswith(".git"):
        value = value[: -len(".git")]
    value = value.rstrip("/")

    host, _, path = value.partition("/")
    if not path:
        raise ConfigurationError(f"Not a repository URL: {url!r}")
    return f"{host.lower()}/{path}"


def cache_key(normalized_url: str) -> str:
    return hashlib.sha256(normalized_url.encode("utf-8")).hexdigest()[:16]


class RepoCache:
    """Maps normalised repository URL -> local working-copy path.

    Entries are validated before reuse; a copy that vanished or lost its
    ``.git`` directory is evicted and cloned again. Work on one URL is
    serialised with a per-URL lock so concurrent requests never see a
    half-cloned or half-updated copy.
    """

    def __init__(self, base_dir: Optional[Path] = None, git_timeout: Optional[float] = None):
        self.base_dir = Path(base_dir or settings.REPO_CACHE_DIR)
        self.git_timeout = settings.GIT_TIMEOUT_SECONDS if git_timeout is None else git_timeout
        self._entries: Dict[str, Path] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    def _lock_for(self, key: str) -> asyncio.Lock:
        # No await between lookup and insert, so this is atomic on the event loop
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @staticmethod
    def is_valid(path: Path) -> bool:
        return path.is_dir() and (path / ".git").exists()

    def get(self, url: str) -> Optional[Path]:
        """Cached path for *url*, if any (no validation)."""
        return self._entries.get(normalize_repo_url(url))

    def evict(self, url: str) -> None:
        self._entries.pop(normalize_repo_url(url), None)

    def clear(self) -> None:
        self._entries.clear()

    # ------------------------------------------------------------------
    async def _git(self, *args: str, cwd: Optional[Path] = None) -> None:
        proc = await asyncio.create_subprocess_exec(
            "git", *args,
            cwd=str(cwd) if cwd else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.git_timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise TransportError(f"git {args[0]} timed out after {self.git_timeout:.0f}s")
        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()[:500]
            raise TransportError(f"git {args[0]} failed ({proc.returncode}): {detail}")

    async def _clone(self, normalized: str, target: Path) -> None:
        if target.exists():
            await asyncio.to_thread(shutil.rmtree, target, True)
        target.parent.mkdir(parents=True, exist_ok=True)
        log.info("Cloning %s into %s", normalized, target)
        await self._git("clone", "--depth", "1", f"https://{normalized}.git", str(target))

    async def resolve(self, url: str) -> Path:
        """Return a usable local working copy for *url*, cloning or updating as needed."""
        normalized = normalize_repo_url(url)
        key = cache_key(normalized)

        async with self._lock_for(key):
            cached = self._entries.get(normalized)
            if cached is not None:
                if self.is_valid(cached):
                    try:
                        await self._git("pull", "--ff-only", cwd=cached)
                    except TransportError as e:
                        # A stale copy is still searchable
                        log.warning("Could not update %s: %s", normalized, e)
                    return cached
                log.info("Cached copy of %s is gone, evicting", normalized)
                self._entries.pop(normalized, None)

            target = self.base_dir / key
            await self._clone(normalized, target)
            self._entries[normalized] = target
            return target
