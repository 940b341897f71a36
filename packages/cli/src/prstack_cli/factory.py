"""Builders that turn CLI configuration into core objects.

Kept in the CLI package so neither prstack_core nor prstack_store know
about the .prstack.yml format.
"""

from __future__ import annotations

import threading

import click
from rich.console import Console

from prstack_core.gh.client import ForgeClient
from prstack_core.gh.pull_request import connect, get_repo
from prstack_core.gh.resilience import CircuitBreaker, RetryPolicy
from prstack_core.git import LocalRepository
from prstack_store.base import BaseCache

console = Console(stderr=True)


def build_cache(config: dict) -> BaseCache:
    """Instantiate the configured cache.

      cache: sqlite -> SQLiteCache (cache_path or .prstack-cache.db)
      (default)     -> NoOpCache
    """
    from prstack_store.noop import NoOpCache

    cache_type = config.get("cache", "noop")
    if cache_type == "sqlite":
        from prstack_store.sqlite import SQLiteCache

        return SQLiteCache(db_path=config.get("cache_path", ".prstack-cache.db"))
    if cache_type != "noop":
        console.print(f"[yellow]Unknown cache '{cache_type}'. Falling back to no cache.[/yellow]")
    return NoOpCache()


def build_breaker(config: dict) -> CircuitBreaker:
    return CircuitBreaker(
        max_failures=int(config.get("circuit_max_failures", 5)),
        reset_timeout=float(config.get("circuit_reset_timeout", 60.0)),
    )


def resolve_repo_name(repo_name: str | None, local: LocalRepository) -> str:
    if repo_name:
        return repo_name
    slug = local.remote_slug()
    if not slug:
        raise click.UsageError(f"Could not infer the GitHub repository from remote '{local.remote}'. Pass --repo owner/name.")
    return slug


def build_client(obj: dict, repo_name: str, cancel_event: threading.Event | None = None) -> ForgeClient:
    config = obj["config"]
    token = config.get("github_token")
    if not token:
        raise click.UsageError("No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.")

    gh = connect(token, timeout=int(config.get("timeout", 30)))
    return ForgeClient(
        get_repo(gh, repo_name),
        gh=gh,
        breaker=obj["breaker"],
        policy=RetryPolicy.from_config(config),
        cancel_event=cancel_event,
        cache=obj["cache"],
        cache_ttl=int(config.get("cache_ttl", 3600)),
    )
