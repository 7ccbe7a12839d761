"""Codebase search over a local directory or a cached clone of a remote repository."""
from __future__ import annotations

import asyncio
import logging
import os
import re
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterator, List, Optional

from errors import ConfigurationError, ToolValidationError
from .repo_cache import RepoCache
from .schemas import CodebaseConnector, SearchCodebaseArgs

log = logging.getLogger("parsec.connectors")

DEFAULT_PATTERN = "**/*"
MAX_FILES = 200
MAX_CONTENT_FILES = 50
MAX_MATCHES_PER_FILE = 20
MAX_LINE_LENGTH = 300

EXCLUDED_DIRS = frozenset({
    ".git", "node_modules", "dist", "build", "__pycache__", ".venv", "venv",
    ".next", "coverage", "target", "vendor", ".tox", ".mypy_cache", ".pytest_cache",
})

BINARY_EXTENSIONS = frozenset({
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".webp", ".svgz", ".tiff",
    ".pdf", ".zip", ".gz", ".tgz", ".bz2", ".xz", ".7z", ".rar", ".tar", ".jar",
    ".exe", ".dll", ".so", ".dylib", ".bin", ".o", ".a", ".class", ".pyc", ".pyo",
    ".woff", ".woff2", ".ttf", ".otf", ".eot", ".mp3", ".mp4", ".mov", ".avi",
    ".wav", ".flac", ".ogg", ".webm", ".sqlite", ".db", ".lock",
})


def _check_pattern(pattern: str) -> str:
    pattern = (pattern or "").strip() or DEFAULT_PATTERN
    if pattern.startswith(("/", "\\")) or ".." in PurePosixPath(pattern).parts:
        raise ToolValidationError(f"Pattern must stay inside the codebase: {pattern!r}")
    return pattern


def _within(root: Path, path: Path) -> bool:
    try:
        path.resolve().relative_to(root)
    except (OSError, ValueError):
        return False
    return True


def _grep_file(path: Path, needle: str) -> List[Dict[str, Any]]:
    """Case-insensitive line matches in one file, capped per file. Unreadable -> []."""
    lines: List[Dict[str, Any]] = []
    try:
        with path.open("r", encoding="utf-8", errors="replace") as fh:
            for number, line in enumerate(fh, start=1):
                if needle in line.lower():
                    lines.append({"line": number, "text": line.rstrip("\n")[:MAX_LINE_LENGTH]})
                    if len(lines) >= MAX_MATCHES_PER_FILE:
                        break
    except OSError as e:
        log.debug("Skipping unreadable file %s: %s", path, e)
        return []
    return lines


def _glob_regex(pattern: str) -> re.Pattern:
    """Compile a glob with '**' support into a regex over POSIX relative paths."""
    out: List[str] = []
    i, n = 0, len(pattern)
    while i < n:
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            out.append("[^/]")
            i += 1
        elif pattern[i] == "[" and pattern.find("]", i + 2) != -1:
            end = pattern.find("]", i + 2)
            body = pattern[i + 1:end]
            if body.startswith("!"):
                body = "^" + body[1:]
            out.append("[" + body.replace("\\", "\\\\") + "]")
            i = end + 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return re.compile("".join(out))


def _walk_files(root: Path) -> Iterator[str]:
    """Relative POSIX paths of every file under *root*, in a stable order.

    Excluded directories are pruned before they are entered; symlinked
    directories are never followed.
    """
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in EXCLUDED_DIRS)
        base = Path(dirpath).relative_to(root)
        for name in sorted(filenames):
            yield (base / name).as_posix()


def search_files(root: Path, pattern: Optional[str] = None, content_search: Optional[str] = None) -> Dict[str, Any]:
    """List files under *root* matching a glob, optionally grepping their contents."""
    root = Path(root).resolve()
    matcher = _glob_regex(_check_pattern(pattern))

    files: List[str] = []
    truncated = False
    for rel in _walk_files(root):
        if not matcher.fullmatch(rel):
            continue
        path = root / rel
        if not _within(root, path) or not path.is_file():
            continue
        if len(files) >= MAX_FILES:
            truncated = True
            break
        files.append(rel)
    files.sort()

    result: Dict[str, Any] = {
        "root": str(root),
        "files": files,
        "fileCount": len(files),
        "truncated": truncated,
    }

    if content_search:
        needle = content_search.lower()
        matches = []
        scanned = 0
        for rel in files:
            if scanned >= MAX_CONTENT_FILES:
                break
            path = root / rel
            if path.suffix.lower() in BINARY_EXTENSIONS:
                continue
            scanned += 1
            lines = _grep_file(path, needle)
            if lines:
                matches.append({"file": rel, "lines": lines})
        result["matches"] = matches
        result["matchCount"] = sum(len(m["lines"]) for m in matches)

    return result


async def resolve_root(config: Optional[CodebaseConnector], repo_cache: RepoCache) -> Path:
    if config is None:
        raise ConfigurationError("Codebase not configured: set a repository URL in the Connectors view")

    if config.url:
        return await repo_cache.resolve(config.url)

    if config.path:
        root = Path(config.path).expanduser()
        if not root.is_dir():
            raise ConfigurationError(f"Codebase path does not exist: {config.path}")
        return root

    raise ConfigurationError("Codebase connector has neither a url nor a path")


async def execute(args: SearchCodebaseArgs, config: Optional[CodebaseConnector], repo_cache: RepoCache) -> Dict[str, Any]:
    root = await resolve_root(config, repo_cache)
    log.info("Searching codebase pattern=%r content=%r", args.pattern, args.content_search)
    # Filesystem walking is blocking; keep it off the event loop
    return await asyncio.to_thread(search_files, root, args.pattern, args.content_search)
