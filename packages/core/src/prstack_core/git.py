"""Local repository access through the git CLI.

The workflow only needs a handful of queries, described by
:class:`GitRepository`. :class:`LocalRepository` implements them by shelling
out to ``git``; tests substitute a MagicMock with the same surface.
"""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from prstack_core.errors import DetectionError, GitError

logger = logging.getLogger(__name__)

_COMMON_DEFAULTS = ("main", "master", "trunk", "development")
_REMOTE_URL_RE = re.compile(r"(?:github\.com[:/])(?P<slug>[^/]+/[^/]+?)(?:\.git)?/?$")

# Unit and record separators keep multi-line commit bodies intact.
_FIELD_SEP = "\x1f"
_RECORD_SEP = "\x1e"


@dataclass
class CommitInfo:
    sha: str
    message: str
    author: str = ""

    @property
    def subject(self) -> str:
        return self.message.strip().split("\n", 1)[0].strip()

    @property
    def body(self) -> str:
        parts = self.message.strip().split("\n", 1)
        return parts[1].strip() if len(parts) > 1 else ""


class GitRepository(Protocol):
    def current_branch(self) -> str: ...

    def default_branch(self) -> str: ...

    def commits_between(self, base: str, head: str) -> list[CommitInfo]: ...

    def push(self, branch: str) -> None: ...

    def list_branches(self) -> list[str]: ...

    def merge_base(self, ref1: str, ref2: str) -> str: ...

    def count_commits(self, base: str, head: str) -> int: ...

    def changed_files(self, base: str, head: str) -> list[str]: ...

    def read_file(self, path: str) -> str | None: ...


class LocalRepository:
    def __init__(self, path: str = ".", remote: str = "origin"):
        self.path = Path(path)
        self.remote = remote

    def _run(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        cmd = ["git", *args]
        logger.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, cwd=self.path, capture_output=True, text=True)
        except FileNotFoundError as exc:
            raise GitError(list(args), 127, "git executable not found") from exc
        if check and result.returncode != 0:
            raise GitError(list(args), result.returncode, result.stderr)
        return result

    def _output(self, *args: str) -> str:
        return self._run(*args).stdout.strip()

    @classmethod
    def open(cls, path: str = ".", remote: str = "origin") -> LocalRepository:
        repo = cls(path, remote)
        try:
            root = repo._output("rev-parse", "--show-toplevel")
        except GitError as exc:
            raise DetectionError(f"{path} is not inside a git repository") from exc
        return cls(root, remote)

    def current_branch(self) -> str:
        branch = self._output("rev-parse", "--abbrev-ref", "HEAD")
        if branch == "HEAD":
            raise DetectionError("HEAD is detached; check out a branch first")
        return branch

    def default_branch(self) -> str:
        """Remote HEAD if known, else the first of main/master/trunk/development that exists locally."""
        result = self._run("symbolic-ref", "--short", f"refs/remotes/{self.remote}/HEAD", check=False)
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip().split("/", 1)[-1]

        branches = self.list_branches()
        for name in _COMMON_DEFAULTS:
            if name in branches:
                return name
        if branches:
            return branches[0]
        raise DetectionError("could not determine the default branch: repository has no branches")

    def list_branches(self) -> list[str]:
        out = self._output("for-each-ref", "--format=%(refname:short)", "refs/heads/")
        return [line for line in out.splitlines() if line]

    def commits_between(self, base: str, head: str) -> list[CommitInfo]:
        """Commits reachable from ``head`` but not ``base``, newest first."""
        fmt = f"%H{_FIELD_SEP}%an{_FIELD_SEP}%B{_RECORD_SEP}"
        out = self._run("log", f"--format={fmt}", f"{base}..{head}").stdout
        commits = []
        for record in out.split(_RECORD_SEP):
            record = record.strip("\n")
            if not record:
                continue
            sha, author, message = record.split(_FIELD_SEP, 2)
            commits.append(CommitInfo(sha=sha.strip(), message=message.strip(), author=author))
        return commits

    def merge_base(self, ref1: str, ref2: str) -> str:
        sha = self._output("merge-base", ref1, ref2)
        if not sha:
            raise GitError(["merge-base", ref1, ref2], 0, "empty result")
        return sha

    def count_commits(self, base: str, head: str) -> int:
        return int(self._output("rev-list", "--count", f"{base}..{head}") or 0)

    def changed_files(self, base: str, head: str) -> list[str]:
        out = self._output("diff", "--name-only", f"{base}...{head}")
        return [line for line in out.splitlines() if line]

    def read_file(self, path: str) -> str | None:
        target = self.path / path
        return target.read_text() if target.is_file() else None

    def remote_slug(self) -> str | None:
        """``owner/name`` parsed from the remote URL, or None for non-GitHub remotes."""
        result = self._run("remote", "get-url", self.remote, check=False)
        match = _REMOTE_URL_RE.search(result.stdout.strip()) if result.returncode == 0 else None
        return match.group("slug") if match else None

    def push(self, branch: str) -> None:
        """Push ``branch``, retrying with --force-with-lease when the remote has diverged."""
        result = self._run("push", "-u", self.remote, branch, check=False)
        if result.returncode == 0:
            return
        output = result.stdout + result.stderr
        if "[rejected]" in output and "non-fast-forward" in output:
            logger.info("Push of %s rejected as non-fast-forward, retrying with --force-with-lease.", branch)
            self._run("push", "--force-with-lease", "-u", self.remote, branch)
            return
        raise GitError(["push", "-u", self.remote, branch], result.returncode, result.stderr)
