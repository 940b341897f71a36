"""Tests for commit analysis."""

from unittest.mock import MagicMock

import pytest

from prstack_core.git import CommitInfo
from prstack_core.models import StackingContext
from prstack_core.template.commit_analysis import NO_COMMITS_SUMMARY, analyze_commits, title_from_branch
from prstack_core.template.template import generate_template, parse_template


def _repo(messages):
    """Repository whose commits (newest first) carry ``messages``."""
    repo = MagicMock()
    repo.commits_between.return_value = [CommitInfo(sha=f"c{i}", message=m) for i, m in enumerate(messages)]
    return repo


def test_single_commit_supplies_title_and_body():
    analysis = analyze_commits(_repo(["feat: add auth\n\nAdds login endpoint."]), "origin/main", "feature/auth")
    assert analysis.title == "feat: add auth"
    assert analysis.summary == "Adds login endpoint."
    assert analysis.commit_count == 1
    assert analysis.base_branch == "origin/main"


def test_multiple_commits_use_oldest_subject():
    repo = _repo(["fix typo", "add tests\n\ncovers login", "feat: add auth"])
    analysis = analyze_commits(repo, "origin/main", "feature/auth")
    assert analysis.title == "feat: add auth"
    assert analysis.summary.splitlines() == [
        "**Commits**",
        "",
        "- feat: add auth",
        "- add tests",
        "  covers login",
        "- fix typo",
    ]
    assert analysis.commit_count == 3


def test_no_commits_falls_back_to_branch_name():
    analysis = analyze_commits(_repo([]), "origin/main", "feature/add-user_auth")
    assert analysis.title == "Add User Auth"
    assert analysis.summary == NO_COMMITS_SUMMARY
    assert analysis.commit_count == 0


def test_merge_commit_flag():
    analysis = analyze_commits(_repo(["Merge branch 'main'", "feat: add auth"]), "origin/main", "feature/auth")
    assert analysis.has_merge_commits is True
    assert analyze_commits(_repo(["feat: add auth"]), "b", "h").has_merge_commits is False


@pytest.mark.parametrize(
    "branch,expected",
    [
        ("feature/add-user_auth", "Add User Auth"),
        ("fix/login", "Login"),
        ("plain", "Plain"),
        ("feature/", "Update code"),
    ],
)
def test_title_from_branch(branch, expected):
    assert title_from_branch(branch) == expected


def test_multi_commit_summary_survives_template_round_trip():
    analysis = analyze_commits(_repo(["add tests", "feat: add auth"]), "origin/main", "feature/auth")
    ctx = StackingContext(is_stacking=False, base_branch="main", current_branch="feature/auth")
    assert parse_template(generate_template(ctx, analysis)).summary == analysis.summary
