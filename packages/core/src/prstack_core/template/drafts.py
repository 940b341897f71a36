"""Saved PR metadata documents for ``prstack diff --continue``.

A document is saved as soon as the editor closes, so a validation failure
or a crash never loses what the user typed. Saved documents live in the
system temp directory and are removed once their PR has been submitted.
"""

from __future__ import annotations

import logging
import os
import tempfile
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from prstack_core.template.template import extract_branch_info

logger = logging.getLogger(__name__)

DRAFT_PREFIX = "prstack-diff-saved-"
DRAFT_SUFFIX = ".md"


class DraftStore:
    # Small fixed pool for stat() calls; the merge below is order-independent.
    SCAN_WORKERS = 4

    def __init__(self, directory: str | None = None, prefix: str = DRAFT_PREFIX):
        self.directory = Path(directory or tempfile.gettempdir())
        self.prefix = prefix

    def save(self, content: str, path: str | None = None) -> str:
        """Write ``content`` to ``path``, or to a new draft file when ``path`` is None."""
        if path is None:
            fd, path = tempfile.mkstemp(prefix=self.prefix, suffix=DRAFT_SUFFIX, dir=self.directory)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
        else:
            Path(path).write_text(content, encoding="utf-8")
        logger.debug("Saved PR template to %s.", path)
        return path

    def load(self, path: str) -> str:
        return Path(path).read_text(encoding="utf-8")

    def remove(self, path: str | None) -> None:
        if not path:
            return
        Path(path).unlink(missing_ok=True)
        logger.debug("Removed saved PR template %s.", path)

    @staticmethod
    def _mtime(path: Path) -> tuple[Path, float] | None:
        try:
            return path, path.stat().st_mtime
        except FileNotFoundError:
            return None

    def find(self) -> list[str]:
        """All saved documents, newest first."""
        candidates = list(self.directory.glob(f"{self.prefix}*{DRAFT_SUFFIX}"))
        if not candidates:
            return []
        with ThreadPoolExecutor(max_workers=self.SCAN_WORKERS) as pool:
            stats = [s for s in pool.map(self._mtime, candidates) if s is not None]
        stats.sort(key=lambda item: (item[1], str(item[0])), reverse=True)
        return [str(path) for path, _ in stats]

    def latest(self, branch: str) -> str | None:
        """Newest saved document whose header names ``branch`` as the head."""
        for path in self.find():
            try:
                content = self.load(path)
            except FileNotFoundError:
                continue
            info = extract_branch_info(content)
            if info is not None and info[0] == branch:
                return path
        return None
