"""Derive a PR title and summary from the commits on a branch."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from prstack_core.models import CommitAnalysis

if TYPE_CHECKING:
    from prstack_core.git import CommitInfo, GitRepository

logger = logging.getLogger(__name__)

_BRANCH_PREFIXES = ("feature/", "fix/", "bugfix/", "hotfix/", "chore/", "refactor/")
_FALLBACK_TITLE = "Update code"
NO_COMMITS_SUMMARY = "No commits found in this branch"


def title_from_branch(branch: str) -> str:
    """``feature/add-user_auth`` -> ``Add User Auth``."""
    for prefix in _BRANCH_PREFIXES:
        if branch.startswith(prefix):
            branch = branch[len(prefix) :]
            break
    words = branch.replace("-", " ").replace("_", " ").split()
    return " ".join(w[:1].upper() + w[1:] for w in words) or _FALLBACK_TITLE


def _summarize(commits: list[CommitInfo]) -> str:
    lines = ["**Commits**", ""]
    for commit in reversed(commits):
        if not commit.subject:
            continue
        lines.append(f"- {commit.subject}")
        lines += [f"  {line}" for line in commit.body.splitlines() if line.strip()]
    return "\n".join(lines)


def analyze_commits(repo: GitRepository, base: str, head: str) -> CommitAnalysis:
    """Analyse commits in ``base..head``.

    One commit supplies title and body directly. With several, the oldest
    commit's subject becomes the title and every commit is listed in the
    summary, oldest first.
    """
    commits = repo.commits_between(base, head)
    logger.debug("Analysing %d commit(s) in %s..%s.", len(commits), base, head)

    analysis = CommitAnalysis(
        title="",
        summary="",
        base_branch=base,
        commit_count=len(commits),
        messages=[c.message for c in commits],
        has_merge_commits=any(c.message.strip().startswith("Merge") for c in commits),
    )

    if not commits:
        analysis.title = title_from_branch(head)
        analysis.summary = NO_COMMITS_SUMMARY
    elif len(commits) == 1:
        analysis.title = commits[0].subject or _FALLBACK_TITLE
        analysis.summary = commits[0].body
    else:
        analysis.title = commits[-1].subject or f"Merge {len(commits)} commits"
        analysis.summary = _summarize(commits)
    return analysis
