"""
Tests for repository URL normalisation and the clone cache
"""
import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from connectors.repo_cache import RepoCache, cache_key, normalize_repo_url
from errors import ConfigurationError, TransportError


@pytest.mark.unit
class TestNormalizeRepoUrl:

    @pytest.mark.parametrize("url", [
        "https://github.com/acme/app",
        "https://github.com/acme/app.git",
        "https://github.com/acme/app/",
        "http://GitHub.com/acme/app",
        "git@github.com:acme/app.git",
        "ssh://git@github.com/acme/app",
        "https://token@github.com/acme/app.git",
        "github.com/acme/app",
    ])
    def test_equivalent_forms(self, url):
        assert normalize_repo_url(url) == "github.com/acme/app"

    def test_path_case_is_kept(self):
        assert normalize_repo_url("https://github.com/Acme/App") == "github.com/Acme/App"

    @pytest.mark.parametrize("url", ["", "   ", "https://github.com", "github.com/"])
    def test_rejects_non_repository_urls(self, url):
        with pytest.raises(ConfigurationError):
            normalize_repo_url(url)

    def test_cache_key_is_stable(self):
        assert cache_key("github.com/acme/app") == cache_key("github.com/acme/app")
        assert len(cache_key("github.com/acme/app")) == 16


def fake_git(cache, fail_on=None):
    """Replace RepoCache._git; a clone creates the working copy on disk."""
    calls = []

    async def _git(*args, cwd=None):
        calls.append((args, cwd))
        if fail_on and args[0] == fail_on:
            raise TransportError(f"git {args[0]} failed (128): fatal")
        if args[0] == "clone":
            (Path(args[-1]) / ".git").mkdir(parents=True, exist_ok=True)

    cache._git = _git
    return calls


@pytest.fixture
def cache(tmp_path):
    return RepoCache(base_dir=tmp_path / "repos", git_timeout=5)


@pytest.mark.client
class TestRepoCache:
    """Hit / miss / stale-entry behaviour with git mocked out"""

    @pytest.mark.asyncio
    async def test_miss_clones_shallow(self, cache):
        calls = fake_git(cache)

        path = await cache.resolve("https://github.com/acme/app.git")

        assert path == cache.base_dir / cache_key("github.com/acme/app")
        assert calls == [(("clone", "--depth", "1", "https://github.com/acme/app.git", str(path)), None)]
        assert cache.get("git@github.com:acme/app") == path

    @pytest.mark.asyncio
    async def test_hit_pulls_instead_of_cloning(self, cache):
        calls = fake_git(cache)
        first = await cache.resolve("https://github.com/acme/app")

        second = await cache.resolve("git@github.com:acme/app.git")

        assert second == first
        assert calls[-1] == (("pull", "--ff-only"), first)
        assert [c[0][0] for c in calls] == ["clone", "pull"]

    @pytest.mark.asyncio
    async def test_failed_pull_keeps_cached_copy(self, cache):
        fake_git(cache)
        first = await cache.resolve("https://github.com/acme/app")
        fake_git(cache, fail_on="pull")

        assert await cache.resolve("https://github.com/acme/app") == first

    @pytest.mark.asyncio
    async def test_invalid_entry_is_evicted_and_recloned(self, cache):
        calls = fake_git(cache)
        path = await cache.resolve("https://github.com/acme/app")
        (path / ".git").rmdir()

        again = await cache.resolve("https://github.com/acme/app")

        assert again == path
        assert [c[0][0] for c in calls] == ["clone", "clone"]
        assert RepoCache.is_valid(again)

    @pytest.mark.asyncio
    async def test_clone_failure_is_not_cached(self, cache):
        fake_git(cache, fail_on="clone")

        with pytest.raises(TransportError):
            await cache.resolve("https://github.com/acme/missing")

        assert cache.get("https://github.com/acme/missing") is None

    @pytest.mark.asyncio
    async def test_concurrent_requests_clone_once(self, cache):
        calls = fake_git(cache)

        paths = await asyncio.gather(*[cache.resolve("https://github.com/acme/app") for _ in range(5)])

        assert len(set(paths)) == 1
        assert [c[0][0] for c in calls].count("clone") == 1

    def test_evict_and_clear(self, cache, tmp_path):
        cache._entries["github.com/acme/app"] = tmp_path
        cache.evict("https://github.com/acme/app.git")
        assert cache.get("https://github.com/acme/app") is None

        cache._entries["github.com/acme/app"] = tmp_path
        cache.clear()
        assert cache.get("https://github.com/acme/app") is None


@pytest.mark.client
class TestGitSubprocess:
    """_git error mapping with the subprocess mocked"""

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, cache, mocker):
        proc = mocker.Mock(returncode=128)
        proc.communicate = AsyncMock(return_value=(b"", b"fatal: repository not found"))
        mocker.patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc))

        with pytest.raises(TransportError, match="repository not found"):
            await cache._git("clone", "https://github.com/acme/missing.git", "/tmp/x")

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, cache, mocker):
        async def hang():
            await asyncio.sleep(10)

        proc = mocker.Mock(returncode=None)
        proc.communicate = hang
        proc.wait = AsyncMock(return_value=-9)
        mocker.patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=proc))
        cache.git_timeout = 0.01

        with pytest.raises(TransportError, match="timed out"):
            await cache._git("pull", "--ff-only")

        proc.kill.assert_called_once()
