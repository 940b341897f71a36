"""Base branch detection.

Decides which branch a new pull request should target. Rules are tried in
order and the first one that applies wins:

  1. --base override   -> that branch; stacked if it has an open PR
  2. default_base      -> configured branch, never stacked
  3. stacking disabled -> repository default branch
  4. ancestry walk     -> nearest local branch with an open PR that the
                          current branch was cut from
  5. fallback          -> repository default branch

Detection only reads git ancestry and the open PR list. It never writes to
GitHub.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from prstack_core.errors import DetectionError, GitError
from prstack_core.models import ReviewRequest, StackingContext

if TYPE_CHECKING:
    from prstack_core.gh.client import ForgeClient
    from prstack_core.git import GitRepository

logger = logging.getLogger(__name__)

RULE_OVERRIDE = "explicit-flag"
RULE_CONFIG = "config-default"
RULE_NO_STACKING = "default-branch-no-stacking"
RULE_ANCESTRY = "auto-detected-stacking"
RULE_DEFAULT = "default-branch"


class BaseBranchDetector:
    def __init__(self, repo: GitRepository, client: ForgeClient, config: dict):
        self.repo = repo
        self.client = client
        self.config = config

    def detect(
        self,
        current_branch: str,
        override: str | None = None,
        open_requests: list[ReviewRequest] | None = None,
    ) -> StackingContext:
        """Return the StackingContext for ``current_branch``.

        ``open_requests`` lets the caller share one PR listing between
        detection and dependent tracking; it is fetched when omitted.

        Raises DetectionError when the default branch or the ancestry of
        ``current_branch`` cannot be resolved.
        """
        if override:
            return self._from_override(current_branch, override, open_requests)

        default_base = self.config.get("default_base")
        if default_base:
            return self._context(
                current_branch,
                default_base,
                RULE_CONFIG,
                f"Using default_base '{default_base}' from configuration.",
            )

        default_branch = self._default_branch()
        if not self.config.get("enable_stacking", True):
            return self._context(
                current_branch,
                default_branch,
                RULE_NO_STACKING,
                f"Stacking is disabled; targeting '{default_branch}'.",
            )

        if open_requests is None:
            open_requests = self.client.list_open()

        parent = self._find_parent(current_branch, default_branch, open_requests)
        if parent is not None:
            return StackingContext(
                is_stacking=True,
                base_branch=parent.head.name,
                current_branch=current_branch,
                parent=parent,
                rule=RULE_ANCESTRY,
                explanation=(
                    f"'{current_branch}' was branched from '{parent.head.name}', "
                    f"which has open PR #{parent.number}. Use --base to override."
                ),
            )

        return self._context(
            current_branch,
            default_branch,
            RULE_DEFAULT,
            f"No parent branch with an open PR found; targeting '{default_branch}'.",
        )

    def _from_override(
        self,
        current_branch: str,
        override: str,
        open_requests: list[ReviewRequest] | None,
    ) -> StackingContext:
        if open_requests is None:
            open_requests = self.client.list_open()
        parent = next((r for r in open_requests if r.head.name == override and r.is_open), None)
        if parent is not None:
            return StackingContext(
                is_stacking=True,
                base_branch=override,
                current_branch=current_branch,
                parent=parent,
                rule=RULE_OVERRIDE,
                explanation=f"Using --base '{override}', stacking on PR #{parent.number}.",
            )
        return self._context(current_branch, override, RULE_OVERRIDE, f"Using --base '{override}'.")

    @staticmethod
    def _context(current_branch: str, base: str, rule: str, explanation: str) -> StackingContext:
        logger.info("Base branch '%s' (%s).", base, rule)
        return StackingContext(
            is_stacking=False,
            base_branch=base,
            current_branch=current_branch,
            rule=rule,
            explanation=explanation,
        )

    def _default_branch(self) -> str:
        try:
            return self.repo.default_branch()
        except GitError as exc:
            raise DetectionError(f"could not determine the default branch: {exc}") from exc

    def _find_parent(
        self,
        current_branch: str,
        default_branch: str,
        open_requests: list[ReviewRequest],
    ) -> ReviewRequest | None:
        """Nearest branch with an open PR whose history the current branch builds on.

        A candidate qualifies when its merge-base with the current branch is
        newer than the default branch's and the current branch has commits
        on top of it. Among qualifying candidates the one with the fewest
        commits between merge-base and the current branch wins.
        """
        by_head = {r.head.name: r for r in open_requests if r.is_open}

        try:
            trunk_base = self.repo.merge_base(current_branch, default_branch)
            branches = self.repo.list_branches()
        except GitError as exc:
            raise DetectionError(
                f"could not resolve ancestry of '{current_branch}' against '{default_branch}': {exc}"
            ) from exc

        best: tuple[int, ReviewRequest] | None = None
        for branch in branches:
            if branch in (current_branch, default_branch) or branch not in by_head:
                continue
            try:
                candidate_base = self.repo.merge_base(current_branch, branch)
                if candidate_base == trunk_base:
                    continue
                distance = self.repo.count_commits(candidate_base, current_branch)
            except GitError as exc:
                logger.debug("Skipping candidate parent '%s': %s", branch, exc)
                continue
            if distance <= 0:
                continue
            logger.debug("Candidate parent '%s' is %d commit(s) behind '%s'.", branch, distance, current_branch)
            if best is None or distance < best[0]:
                best = (distance, by_head[branch])

        return best[1] if best else None
