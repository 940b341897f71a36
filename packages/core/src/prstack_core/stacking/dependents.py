"""Dependent PR tracking and base-drift detection.

A dependent is an open PR whose base is the branch being submitted. When
the current PR already exists, its recorded base can drift in two ways
that are handled differently:

- renamed base: the detected base *name* differs, so the PR's base is
  patched on GitHub.
- rebased base: same name, different tip commit. GitHub tracks base
  branches by name, so nothing is written and the fact is only reported.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from prstack_core.models import ReviewRequest

if TYPE_CHECKING:
    from prstack_core.gh.client import ForgeClient

logger = logging.getLogger(__name__)


@dataclass
class DependentInfo:
    dependents: list[ReviewRequest] = field(default_factory=list)

    @property
    def has_dependents(self) -> bool:
        return bool(self.dependents)

    def format_warning(self) -> str:
        if not self.has_dependents:
            return ""
        lines = [f"This branch has {len(self.dependents)} dependent PR(s):"]
        lines += [f"  - #{r.number}: {r.title} (branch: {r.head.name})" for r in self.dependents]
        lines.append("Changes to this branch will affect the dependent PRs.")
        return "\n".join(lines)


@dataclass
class StackedUpdateResult:
    request: ReviewRequest
    old_base: str
    new_base: str
    base_updated: bool = False
    rebase_detected: bool = False


def detect_base_changed(existing: ReviewRequest, detected_base: str) -> bool:
    return existing.base.name != detected_base


def detect_rebase(existing: ReviewRequest, current_base_sha: str) -> bool:
    """True when the PR's recorded base commit differs from the base branch tip.

    An unknown sha on either side never counts as a rebase.
    """
    if not current_base_sha or not existing.base.sha:
        return False
    return existing.base.sha != current_base_sha


class DependentTracker:
    def __init__(self, client: ForgeClient):
        self.client = client

    def find_dependents(self, branch: str, open_requests: list[ReviewRequest] | None = None) -> DependentInfo:
        """Open PRs targeting ``branch``, in listing order (most recently updated first)."""
        if open_requests is None:
            open_requests = self.client.list_open()
        dependents = [r for r in open_requests if r.base.name == branch and r.is_open]
        logger.debug("Found %d dependent PR(s) on '%s'.", len(dependents), branch)
        return DependentInfo(dependents=dependents)

    def handle_stacked_update(
        self,
        existing: ReviewRequest,
        detected_base: str,
        current_base_sha: str = "",
    ) -> StackedUpdateResult:
        """Patch ``existing``'s base if its name changed; only report a rebase."""
        result = StackedUpdateResult(request=existing, old_base=existing.base.name, new_base=detected_base)

        if detect_base_changed(existing, detected_base):
            logger.info(
                "Base of PR #%d changed from '%s' to '%s', updating.",
                existing.number,
                existing.base.name,
                detected_base,
            )
            result.request = self.client.update_base(existing, detected_base)
            result.base_updated = True
        elif detect_rebase(existing, current_base_sha):
            logger.info("Base branch '%s' of PR #%d was rebased.", detected_base, existing.number)
            result.rebase_detected = True

        return result
