"""Abstract cache interface.

prstack_core talks to BaseCache only, so the backend (none, SQLite) is
chosen by the CLI from configuration without touching core code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class BaseCache(ABC):
    """Key/value result cache with per-entry expiry.

    Values must be JSON-serialisable. A miss and an expired entry look the
    same to callers.
    """

    @abstractmethod
    def get(self, key: str) -> tuple[bool, Any]:
        """Return ``(True, value)`` on a hit, ``(False, None)`` otherwise."""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds."""

    def close(self) -> None:
        """Release any resources held by the cache.

        Default is a no-op so callers can always call close() safely.
        """
