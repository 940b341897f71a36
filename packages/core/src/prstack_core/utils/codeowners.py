"""Reviewer suggestions from a CODEOWNERS file."""

from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prstack_core.git import GitRepository

logger = logging.getLogger(__name__)

CODEOWNERS_LOCATIONS = (".github/CODEOWNERS", "CODEOWNERS", "docs/CODEOWNERS")


@dataclass
class OwnerRule:
    pattern: str
    owners: list[str]
    line: int = 0


@dataclass
class CodeOwners:
    rules: list[OwnerRule] = field(default_factory=list)
    path: str | None = None

    def owners_for(self, filename: str) -> list[str]:
        """Owners of ``filename``; the last matching rule wins, as on GitHub."""
        for rule in reversed(self.rules):
            if matches(rule.pattern, filename):
                return rule.owners
        return []

    def reviewers_for(self, changed_files: list[str], exclude: str | None = None) -> list[str]:
        excluded = {exclude.lower().lstrip("@")} if exclude else set()
        reviewers: list[str] = []
        for filename in changed_files:
            for owner in self.owners_for(filename):
                if owner.lstrip("@").lower() in excluded or owner in reviewers:
                    continue
                reviewers.append(owner)
        return reviewers


def matches(pattern: str, filename: str) -> bool:
    """Match a CODEOWNERS pattern against a repository-relative path.

    Supports:
    - ``*`` matching everything
    - anchored patterns: "/docs/*.md" only at the repository root
    - directory patterns: "build/" or "/build/" matches everything below it
    - fnmatch globs on the full path or on the basename: "*.js"
    """
    filename = filename.removeprefix("./")
    if pattern == "*":
        return True

    anchored = pattern.startswith("/")
    pattern = pattern.lstrip("/")

    if pattern.endswith("/"):
        prefix = pattern
        return filename.startswith(prefix) or (not anchored and ("/" + prefix) in filename)

    if fnmatch.fnmatch(filename, pattern):
        return True
    if anchored:
        return filename.startswith(pattern.rstrip("/") + "/")
    if "/" not in pattern and fnmatch.fnmatch(filename.rsplit("/", 1)[-1], pattern):
        return True
    # A bare directory name matches anything inside that tree.
    prefix = pattern + "/"
    return filename.startswith(prefix) or ("/" + prefix) in filename


def parse_codeowners(text: str, path: str | None = None) -> CodeOwners:
    rules = []
    for number, raw in enumerate(text.splitlines(), start=1):
        line = raw.split(" #", 1)[0].strip()
        if not line or line.startswith("#"):
            continue
        pattern, *owners = line.split()
        owners = [o for o in owners if o.startswith("@")]
        if not owners:
            logger.debug("Skipping CODEOWNERS line %d with no @owners: %s", number, raw)
            continue
        rules.append(OwnerRule(pattern=pattern, owners=owners, line=number))
    return CodeOwners(rules=rules, path=path)


def load_codeowners(repo: GitRepository) -> CodeOwners:
    for location in CODEOWNERS_LOCATIONS:
        text = repo.read_file(location)
        if text is not None:
            owners = parse_codeowners(text, path=location)
            logger.debug("Loaded %d CODEOWNERS rule(s) from %s.", len(owners.rules), location)
            return owners
    return CodeOwners()
