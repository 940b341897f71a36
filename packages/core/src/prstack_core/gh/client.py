"""Resilient GitHub client.

Every read and write prstack makes goes through :meth:`ForgeClient.call`,
which consults the shared circuit breaker, retries retryable failures with
exponential backoff, and converts PyGithub/requests errors into the
classified errors in :mod:`prstack_core.errors`.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING, Any, Callable, TypeVar

import requests
from github import GithubException
from github.GithubException import BadAttributeException

from prstack_core.errors import (
    APIError,
    CircuitOpenError,
    MaxRetriesExceededError,
    OperationCancelled,
    PRStackError,
)
from prstack_core.gh.pull_request import (
    to_check_run,
    to_requested_reviewers,
    to_review_decision,
    to_review_request,
    with_stacking_metadata,
)
from prstack_core.gh.resilience import (
    CircuitBreaker,
    RetryPolicy,
    error_status,
    is_retryable,
    rate_limit_wait,
)
from prstack_core.models import ReviewRequest

if TYPE_CHECKING:
    from prstack_store.base import BaseCache

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures we classify. Anything else is a programming error and propagates as-is.
_FORGE_ERRORS = (GithubException, BadAttributeException, requests.RequestException)


def _describe(exc: BaseException) -> str:
    data = getattr(exc, "data", None)
    if isinstance(data, dict) and data.get("message"):
        errors = data.get("errors")
        if errors:
            return f"{data['message']} ({errors})"
        return str(data["message"])
    return str(exc)


class ForgeClient:
    # Hard cap on concurrent enrichment requests, whatever the input size.
    ENRICH_MAX_WORKERS = 5
    _POLL_INTERVAL = 0.1

    def __init__(
        self,
        repo,
        gh=None,
        breaker: CircuitBreaker | None = None,
        policy: RetryPolicy | None = None,
        cancel_event: threading.Event | None = None,
        cache: BaseCache | None = None,
        cache_ttl: int = 3600,
    ):
        self.repo = repo
        self.gh = gh
        self.breaker = breaker or CircuitBreaker()
        self.policy = policy or RetryPolicy()
        self.cancel_event = cancel_event or threading.Event()
        self.cache = cache
        self.cache_ttl = cache_ttl

    # ------------------------------------------------------------------ #
    # Core call wrapper                                                    #
    # ------------------------------------------------------------------ #

    def allow(self) -> bool:
        return self.breaker.allow()

    def call(self, operation: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run ``fn`` as one logical request named ``operation``.

        Raises CircuitOpenError without calling ``fn`` while the breaker is
        open, APIError on a non-retryable failure, MaxRetriesExceededError
        once retries run out, and OperationCancelled if ``cancel_event`` is
        set while waiting between attempts.
        """
        if not self.allow():
            raise CircuitOpenError(operation)

        last_error: BaseException | None = None
        for attempt in range(self.policy.max_retries + 1):
            if self.cancel_event.is_set():
                raise OperationCancelled(f"{operation} cancelled")
            try:
                result = fn(*args, **kwargs)
            except _FORGE_ERRORS as exc:
                if not is_retryable(exc):
                    self.breaker.record_failure()
                    raise APIError(operation, error_status(exc), _describe(exc)) from exc
                last_error = exc
                if attempt == self.policy.max_retries:
                    break
                delay = self.policy.backoff(attempt)
                reset_wait = rate_limit_wait(exc, self.policy)
                if reset_wait is not None:
                    delay = max(delay, reset_wait)
                logger.warning(
                    "%s failed (attempt %d/%d): %s. Retrying in %.1fs...",
                    operation,
                    attempt + 1,
                    self.policy.max_retries + 1,
                    _describe(exc),
                    delay,
                )
                if self.cancel_event.wait(delay):
                    raise OperationCancelled(f"{operation} cancelled") from exc
                continue
            self.breaker.record_success()
            return result

        self.breaker.record_failure()
        attempts = self.policy.max_retries + 1
        logger.error("%s failed after %d attempts: %s", operation, attempts, last_error)
        raise MaxRetriesExceededError(operation, attempts, last_error) from last_error

    # ------------------------------------------------------------------ #
    # Reads                                                                #
    # ------------------------------------------------------------------ #

    def list_open(self) -> list[ReviewRequest]:
        """Open pull requests, most recently updated first. Not enriched."""

        def fetch():
            pulls = self.repo.get_pulls(state="open", sort="updated", direction="desc")
            return [to_review_request(pr) for pr in pulls]

        return self.call("list pull requests", fetch)

    def find_for_branch(self, branch: str, open_requests: list[ReviewRequest] | None = None) -> ReviewRequest | None:
        if open_requests is None:
            open_requests = self.list_open()
        for request in open_requests:
            if request.head.name == branch and request.is_open:
                return request
        return None

    def branch_sha(self, branch: str) -> str:
        return self.call("get branch", lambda: self.repo.get_branch(branch).commit.sha)

    def current_user(self) -> str:
        if self.cache is not None:
            hit, login = self.cache.get("viewer")
            if hit:
                return login
        login = self.call("get authenticated user", lambda: self.gh.get_user().login)
        if self.cache is not None:
            self.cache.set("viewer", login, self.cache_ttl)
        return login

    # ------------------------------------------------------------------ #
    # Enrichment                                                           #
    # ------------------------------------------------------------------ #

    def _pull(self, request: ReviewRequest):
        if request.raw is None:
            request.raw = self.call("get pull request", self.repo.get_pull, request.number)
        return request.raw

    def enrich(self, request: ReviewRequest) -> ReviewRequest:
        """Attach reviews, check runs and requested reviewers to ``request``.

        A failing sub-fetch is logged and leaves that field empty; only
        cancellation propagates.
        """
        pr = self._pull(request)
        fetches = [
            ("reviews", "list reviews", lambda: [to_review_decision(r) for r in pr.get_reviews()]),
            (
                "checks",
                "list check runs",
                lambda: [to_check_run(c) for c in self.repo.get_commit(request.head.sha).get_check_runs()],
            ),
            (
                "requested_reviewers",
                "list requested reviewers",
                lambda: to_requested_reviewers(*(list(page) for page in pr.get_review_requests())),
            ),
        ]
        for attr, operation, fetch in fetches:
            try:
                setattr(request, attr, self.call(operation, fetch))
            except OperationCancelled:
                raise
            except PRStackError as exc:
                logger.warning("Could not fetch %s for PR #%d: %s", attr.replace("_", " "), request.number, exc)
                setattr(request, attr, [])
        return request

    def enrich_many(self, requests_: list[ReviewRequest]) -> list[ReviewRequest]:
        """Enrich ``requests_`` concurrently, at most ENRICH_MAX_WORKERS at a time.

        A classified failure on one request is logged and skipped. Cancellation
        or an unexpected error aborts the batch and cancels queued work.
        """
        if not requests_:
            return requests_

        pool = ThreadPoolExecutor(max_workers=self.ENRICH_MAX_WORKERS, thread_name_prefix="prstack-enrich")
        futures = {pool.submit(self.enrich, r): r for r in requests_}
        aborted = False
        try:
            pending = set(futures)
            while pending:
                if self.cancel_event.is_set():
                    raise OperationCancelled("enrichment cancelled")
                done, pending = wait(pending, timeout=self._POLL_INTERVAL, return_when=FIRST_COMPLETED)
                for future in done:
                    try:
                        future.result()
                    except OperationCancelled:
                        raise
                    except PRStackError as exc:
                        logger.warning("Could not enrich PR #%d: %s", futures[future].number, exc)
        except BaseException:
            aborted = True
            raise
        finally:
            pool.shutdown(wait=not aborted, cancel_futures=aborted)
        return requests_

    # ------------------------------------------------------------------ #
    # Writes                                                               #
    # ------------------------------------------------------------------ #

    def create(
        self,
        head: str,
        base: str,
        title: str,
        body: str,
        draft: bool = False,
        parent: ReviewRequest | None = None,
    ) -> ReviewRequest:
        body = with_stacking_metadata(body, parent)
        pr = self.call(
            "create pull request",
            self.repo.create_pull,
            base=base,
            head=head,
            title=title,
            body=body,
            draft=draft,
            maintainer_can_modify=True,
        )
        logger.info("Created PR #%d (%s -> %s).", pr.number, head, base)
        return to_review_request(pr)

    def update(
        self,
        request: ReviewRequest,
        title: str | None = None,
        body: str | None = None,
        base: str | None = None,
        parent: ReviewRequest | None = None,
    ) -> ReviewRequest:
        changes: dict[str, str] = {}
        if title is not None:
            changes["title"] = title
        if body is not None:
            changes["body"] = with_stacking_metadata(body, parent)
        if base is not None:
            changes["base"] = base
        if not changes:
            return request

        pr = self._pull(request)
        self.call("update pull request", pr.edit, **changes)
        logger.info("Updated PR #%d (%s).", request.number, ", ".join(sorted(changes)))
        updated = to_review_request(pr)
        updated.reviews, updated.checks = request.reviews, request.checks
        updated.requested_reviewers = request.requested_reviewers
        return updated

    def update_base(self, request: ReviewRequest, new_base: str) -> ReviewRequest:
        return self.update(request, base=new_base)

    def request_reviewers(self, request: ReviewRequest, users: list[str], teams: list[str]) -> None:
        if not users and not teams:
            return
        pr = self._pull(request)
        self.call("request reviewers", pr.create_review_request, reviewers=users, team_reviewers=teams)

    def mark_ready(self, request: ReviewRequest) -> None:
        self.call("mark ready for review", self._pull(request).mark_ready_for_review)
        request.draft = False

    def convert_to_draft(self, request: ReviewRequest) -> None:
        self.call("convert to draft", self._pull(request).convert_to_draft)
        request.draft = True
