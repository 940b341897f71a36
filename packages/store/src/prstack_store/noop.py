"""No-op cache, the default when no cache is configured.

Lets the client always call ``cache.get``/``cache.set`` without checking
whether caching is enabled.
"""

from __future__ import annotations

from typing import Any

from prstack_store.base import BaseCache


class NoOpCache(BaseCache):
    def get(self, key: str) -> tuple[bool, Any]:
        return False, None

    def set(self, key: str, value: Any, ttl: float) -> None:
        pass  # intentional no-op
