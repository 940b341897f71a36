"""Tests for LocalRepository with git invocations mocked out."""

import subprocess

import pytest

from prstack_core.errors import DetectionError, GitError
from prstack_core.git import CommitInfo, LocalRepository


def _done(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def git(mocker):
    """Map git argument tuples to CompletedProcess results."""
    responses = {}

    def run(cmd, **kwargs):
        key = tuple(cmd[1:])
        if key not in responses:
            return _done(returncode=1, stderr=f"unexpected: {' '.join(cmd)}")
        result = responses[key]
        return result.pop(0) if isinstance(result, list) else result

    run_mock = mocker.patch("prstack_core.git.subprocess.run", side_effect=run)
    run_mock.responses = responses
    return run_mock


def test_open_resolves_toplevel(git, tmp_path):
    git.responses[("rev-parse", "--show-toplevel")] = _done(f"{tmp_path}\n")
    repo = LocalRepository.open(".")
    assert str(repo.path) == str(tmp_path)


def test_open_outside_repository(git):
    git.responses[("rev-parse", "--show-toplevel")] = _done(returncode=128, stderr="not a git repository")
    with pytest.raises(DetectionError):
        LocalRepository.open("/tmp")


def test_git_error_carries_details(git):
    with pytest.raises(GitError) as exc_info:
        LocalRepository().merge_base("a", "b")
    assert exc_info.value.command == ["merge-base", "a", "b"]
    assert exc_info.value.returncode == 1


def test_current_branch(git):
    git.responses[("rev-parse", "--abbrev-ref", "HEAD")] = _done("feature/auth\n")
    assert LocalRepository().current_branch() == "feature/auth"


def test_detached_head(git):
    git.responses[("rev-parse", "--abbrev-ref", "HEAD")] = _done("HEAD\n")
    with pytest.raises(DetectionError, match="detached"):
        LocalRepository().current_branch()


class TestDefaultBranch:
    def test_remote_head(self, git):
        git.responses[("symbolic-ref", "--short", "refs/remotes/origin/HEAD")] = _done("origin/trunk\n")
        assert LocalRepository().default_branch() == "trunk"

    def test_common_name(self, git):
        git.responses[("for-each-ref", "--format=%(refname:short)", "refs/heads/")] = _done("feature/x\nmaster\n")
        assert LocalRepository().default_branch() == "master"

    def test_first_branch(self, git):
        git.responses[("for-each-ref", "--format=%(refname:short)", "refs/heads/")] = _done("only\n")
        assert LocalRepository().default_branch() == "only"

    def test_no_branches(self, git):
        git.responses[("for-each-ref", "--format=%(refname:short)", "refs/heads/")] = _done("")
        with pytest.raises(DetectionError):
            LocalRepository().default_branch()


def test_commits_between_keeps_multiline_bodies(git):
    out = "s2\x1falice\x1ffix typo\n\x1e\ns1\x1fbob\x1ffeat: add auth\n\nAdds login.\n\x1e\n"
    git.responses[("log", "--format=%H\x1f%an\x1f%B\x1e", "origin/main..feature/auth")] = _done(out)
    commits = LocalRepository().commits_between("origin/main", "feature/auth")
    assert commits == [
        CommitInfo(sha="s2", message="fix typo", author="alice"),
        CommitInfo(sha="s1", message="feat: add auth\n\nAdds login.", author="bob"),
    ]
    assert commits[1].subject == "feat: add auth"
    assert commits[1].body == "Adds login."


def test_count_and_changed_files(git):
    git.responses[("rev-list", "--count", "abc..feature/b")] = _done("3\n")
    git.responses[("diff", "--name-only", "origin/main...feature/b")] = _done("a.py\ndocs/x.md\n")
    repo = LocalRepository()
    assert repo.count_commits("abc", "feature/b") == 3
    assert repo.changed_files("origin/main", "feature/b") == ["a.py", "docs/x.md"]


def test_read_file(tmp_path):
    (tmp_path / "CODEOWNERS").write_text("* @alice\n")
    repo = LocalRepository(str(tmp_path))
    assert repo.read_file("CODEOWNERS") == "* @alice\n"
    assert repo.read_file("missing") is None


@pytest.mark.parametrize(
    "url,slug",
    [
        ("git@github.com:acme/app.git", "acme/app"),
        ("https://github.com/acme/app", "acme/app"),
        ("https://gitlab.com/acme/app.git", None),
    ],
)
def test_remote_slug(git, url, slug):
    git.responses[("remote", "get-url", "origin")] = _done(url + "\n")
    assert LocalRepository().remote_slug() == slug


class TestPush:
    def test_push(self, git):
        git.responses[("push", "-u", "origin", "feature/b")] = _done()
        LocalRepository().push("feature/b")
        assert git.call_count == 1

    def test_non_fast_forward_retries_with_lease(self, git):
        rejected = _done(returncode=1, stderr=" ! [rejected] feature/b -> feature/b (non-fast-forward)")
        git.responses[("push", "-u", "origin", "feature/b")] = rejected
        git.responses[("push", "--force-with-lease", "-u", "origin", "feature/b")] = _done()
        LocalRepository().push("feature/b")
        assert git.call_count == 2

    def test_other_failure_raises(self, git):
        git.responses[("push", "-u", "origin", "feature/b")] = _done(returncode=128, stderr="permission denied")
        with pytest.raises(GitError, match="permission denied"):
            LocalRepository().push("feature/b")
