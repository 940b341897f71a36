from __future__ import annotations

from github import Auth, Github

from prstack_core.models import (
    BranchRef,
    CheckConclusion,
    CheckRun,
    CheckState,
    RequestedReviewer,
    ReviewDecision,
    ReviewRequest,
    ReviewState,
)

STACK_MARKER = "📚 **Stacked on:**"


def connect(token: str, timeout: int = 30) -> Github:
    # Retries are handled by ForgeClient, so urllib3's own retry is disabled.
    return Github(auth=Auth.Token(token), timeout=timeout, retry=None, per_page=100)


def get_repo(gh: Github, repo_name: str):
    return gh.get_repo(repo_name, lazy=True)


def _login(user) -> str:
    return getattr(user, "login", "") or "" if user is not None else ""


def to_review_request(pr) -> ReviewRequest:
    """Convert a PyGithub PullRequest into a :class:`ReviewRequest`.

    Only attributes present in the list payload are read so the conversion
    never triggers a lazy completion request.
    """
    return ReviewRequest(
        number=pr.number,
        node_id=pr.node_id or "",
        title=pr.title or "",
        state=pr.state or "open",
        draft=bool(pr.draft),
        head=BranchRef(name=pr.head.ref, sha=pr.head.sha or ""),
        base=BranchRef(name=pr.base.ref, sha=pr.base.sha or ""),
        author=_login(pr.user),
        url=pr.html_url or "",
        body=pr.body or "",
        created_at=pr.created_at,
        updated_at=pr.updated_at,
        raw=pr,
    )


def to_review_decision(review) -> ReviewDecision:
    return ReviewDecision(
        reviewer=_login(review.user),
        state=ReviewState.parse(review.state),
        submitted_at=review.submitted_at,
    )


def to_check_run(run) -> CheckRun:
    return CheckRun(
        name=run.name or "",
        status=CheckState.parse(run.status),
        conclusion=CheckConclusion.parse(run.conclusion),
    )


def to_requested_reviewers(users, teams) -> list[RequestedReviewer]:
    reviewers = [RequestedReviewer(login=u.login) for u in users]
    reviewers.extend(RequestedReviewer(login=t.slug, is_team=True) for t in teams)
    return reviewers


def parse_reviewers(tokens: list[str]) -> tuple[list[str], list[str]]:
    """Split reviewer handles into ``(users, team_slugs)``.

    ``@alice`` is a user; ``@acme/platform`` is the ``platform`` team. The
    API wants team slugs without the org prefix.
    """
    users: list[str] = []
    teams: list[str] = []
    for token in tokens:
        cleaned = token.strip().removeprefix("@")
        if not cleaned:
            continue
        if "/" in cleaned:
            slug = cleaned.split("/", 1)[1]
            if slug and slug not in teams:
                teams.append(slug)
        elif cleaned not in users:
            users.append(cleaned)
    return users, teams


def format_stacking_metadata(parent: ReviewRequest | None) -> str:
    if parent is None:
        return ""
    return "\n".join(
        [
            "---",
            "",
            f"{STACK_MARKER} #{parent.number} - {parent.title}",
            "",
            f"This PR is part of a stack and builds upon #{parent.number}. Review and merge that PR first.",
        ]
    )


def with_stacking_metadata(body: str, parent: ReviewRequest | None) -> str:
    """Append the stack footer to ``body`` unless one is already there."""
    if parent is None or STACK_MARKER in body:
        return body
    footer = format_stacking_metadata(parent)
    return f"{body.rstrip()}\n\n{footer}" if body.strip() else footer
