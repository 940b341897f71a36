"""Data model shared by the detector, tracker, editor and workflow.

Review and check states are closed enumerations. Aggregation goes through
the precedence tables below rather than string comparisons at call sites.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ReviewState(str, Enum):
    APPROVED = "APPROVED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    COMMENTED = "COMMENTED"
    PENDING = "PENDING"
    DISMISSED = "DISMISSED"

    @classmethod
    def parse(cls, value: str | None) -> ReviewState:
        try:
            return cls((value or "").upper())
        except ValueError:
            return cls.PENDING


class ReviewStatus(str, Enum):
    CHANGES_REQUESTED = "changes_requested"
    APPROVED = "approved"
    COMMENTED = "commented"
    PENDING = "pending"
    REVIEW_REQUIRED = "review_required"


# Highest precedence first. DISMISSED reviews count as pending.
_REVIEW_PRECEDENCE: list[tuple[ReviewState, ReviewStatus]] = [
    (ReviewState.CHANGES_REQUESTED, ReviewStatus.CHANGES_REQUESTED),
    (ReviewState.APPROVED, ReviewStatus.APPROVED),
    (ReviewState.COMMENTED, ReviewStatus.COMMENTED),
]


class CheckState(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @classmethod
    def parse(cls, value: str | None) -> CheckState:
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.QUEUED


class CheckConclusion(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    NEUTRAL = "neutral"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"
    TIMED_OUT = "timed_out"
    ACTION_REQUIRED = "action_required"

    @classmethod
    def parse(cls, value: str | None) -> CheckConclusion | None:
        if not value:
            return None
        try:
            return cls(value.lower())
        except ValueError:
            return cls.NEUTRAL


class CheckStatus(str, Enum):
    FAILURE = "failure"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    NEUTRAL = "neutral"
    PENDING = "pending"


_CONCLUSION_STATUS: dict[CheckConclusion, CheckStatus] = {
    CheckConclusion.SUCCESS: CheckStatus.SUCCESS,
    CheckConclusion.FAILURE: CheckStatus.FAILURE,
    CheckConclusion.TIMED_OUT: CheckStatus.FAILURE,
    CheckConclusion.ACTION_REQUIRED: CheckStatus.FAILURE,
    CheckConclusion.NEUTRAL: CheckStatus.NEUTRAL,
    CheckConclusion.CANCELLED: CheckStatus.NEUTRAL,
    CheckConclusion.SKIPPED: CheckStatus.NEUTRAL,
}

# Highest precedence first.
_CHECK_PRECEDENCE: list[CheckStatus] = [
    CheckStatus.FAILURE,
    CheckStatus.IN_PROGRESS,
    CheckStatus.SUCCESS,
    CheckStatus.NEUTRAL,
]


@dataclass
class BranchRef:
    name: str
    sha: str = ""


@dataclass
class ReviewDecision:
    reviewer: str
    state: ReviewState
    submitted_at: datetime | None = None


@dataclass
class CheckRun:
    name: str
    status: CheckState
    conclusion: CheckConclusion | None = None

    @property
    def aggregate_status(self) -> CheckStatus:
        if self.status is not CheckState.COMPLETED:
            return CheckStatus.IN_PROGRESS
        if self.conclusion is None:
            return CheckStatus.NEUTRAL
        return _CONCLUSION_STATUS[self.conclusion]


@dataclass
class RequestedReviewer:
    login: str
    is_team: bool = False


def aggregate_review_status(reviews: list[ReviewDecision]) -> ReviewStatus:
    """Collapse individual reviews into one status.

    changes_requested > approved > commented > pending, and ``review_required``
    when nobody has reviewed yet.
    """
    if not reviews:
        return ReviewStatus.REVIEW_REQUIRED
    states = {r.state for r in reviews}
    for state, status in _REVIEW_PRECEDENCE:
        if state in states:
            return status
    return ReviewStatus.PENDING


def aggregate_check_status(checks: list[CheckRun]) -> CheckStatus:
    """Collapse check runs into one status: failure > in_progress > success > neutral."""
    if not checks:
        return CheckStatus.PENDING
    seen = {c.aggregate_status for c in checks}
    for status in _CHECK_PRECEDENCE:
        if status in seen:
            return status
    return CheckStatus.NEUTRAL


@dataclass
class ReviewRequest:
    """A pull request as seen by prstack.

    ``reviews``, ``checks`` and ``requested_reviewers`` stay ``None`` until
    :meth:`ForgeClient.enrich` fills them in; the listing call never does.
    """

    number: int
    title: str
    state: str
    head: BranchRef
    base: BranchRef
    node_id: str = ""
    draft: bool = False
    author: str = ""
    url: str = ""
    body: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    reviews: list[ReviewDecision] | None = None
    checks: list[CheckRun] | None = None
    requested_reviewers: list[RequestedReviewer] | None = None
    raw: Any = field(default=None, repr=False, compare=False)

    @property
    def is_open(self) -> bool:
        return self.state == "open"

    @property
    def is_enriched(self) -> bool:
        return self.reviews is not None and self.checks is not None

    @property
    def review_status(self) -> ReviewStatus:
        return aggregate_review_status(self.reviews or [])

    @property
    def check_status(self) -> CheckStatus:
        return aggregate_check_status(self.checks or [])


@dataclass
class StackingContext:
    """Outcome of base-branch detection.

    ``parent`` is set if and only if ``is_stacking`` is true.
    """

    is_stacking: bool
    base_branch: str
    current_branch: str
    parent: ReviewRequest | None = None
    dependents: list[ReviewRequest] = field(default_factory=list)
    show_dependents: bool = False
    rule: str = ""
    explanation: str = ""

    def __post_init__(self):
        if self.is_stacking and self.parent is None:
            raise ValueError("stacking context requires a parent review request")
        if not self.is_stacking and self.parent is not None:
            raise ValueError("non-stacking context cannot carry a parent review request")

    @property
    def has_dependents(self) -> bool:
        return bool(self.dependents)


@dataclass
class CommitAnalysis:
    title: str
    summary: str
    base_branch: str
    commit_count: int = 0
    messages: list[str] = field(default_factory=list)
    has_merge_commits: bool = False


@dataclass
class TemplateFields:
    title: str = ""
    summary: str = ""
    test_plan: str = ""
    reviewers: list[str] = field(default_factory=list)
    refs: list[str] = field(default_factory=list)
    draft: bool = False
    base_branch: str = ""
