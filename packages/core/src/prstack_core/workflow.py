"""The ``prstack diff`` workflow: submit the current branch for review.

Sequence:
    detect base -> find dependents -> look up existing PR
      existing PR, no edit requested  -> fast path: fix base if renamed, push
      otherwise                       -> full path: edit metadata, create/update,
                                         request reviewers, drop saved draft

The workflow does not retry anything itself; every GitHub call is retried
by ForgeClient. Classified errors propagate to the CLI unchanged, except
reviewer assignment failures, which become warnings on a successful result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape

from prstack_core.errors import GitError, NoSavedTemplateError, OperationCancelled, PRStackError
from prstack_core.gh.pull_request import parse_reviewers
from prstack_core.models import CommitAnalysis, ReviewRequest, StackingContext, TemplateFields
from prstack_core.stacking.base import BaseBranchDetector
from prstack_core.stacking.dependents import DependentTracker
from prstack_core.template.commit_analysis import analyze_commits
from prstack_core.template.template import extract_branch_info, generate_template
from prstack_core.utils.codeowners import load_codeowners

if TYPE_CHECKING:
    from prstack_core.gh.client import ForgeClient
    from prstack_core.git import GitRepository
    from prstack_core.template.drafts import DraftStore
    from prstack_core.template.editor import MetadataEditor

logger = logging.getLogger(__name__)
console = Console()


@dataclass
class SubmitOptions:
    draft: bool = False
    ready: bool = False
    force_edit: bool = False
    skip_editor: bool = False
    continue_mode: bool = False
    base_override: str | None = None

    def __post_init__(self):
        if self.draft and self.ready:
            raise ValueError("draft and ready are mutually exclusive")


@dataclass
class SubmitResult:
    request: ReviewRequest
    created: bool
    base_branch: str
    is_stacking: bool = False
    parent: ReviewRequest | None = None
    dependents: list[ReviewRequest] = field(default_factory=list)
    fast_path: bool = False
    pushed: bool = False
    base_updated: bool = False
    rebase_detected: bool = False
    reviewers_added: list[str] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def build_title(fields: TemplateFields, linear_enabled: bool) -> str:
    if linear_enabled and fields.refs:
        return f"{fields.title} [{fields.refs[0]}]"
    return fields.title


def build_body(fields: TemplateFields) -> str:
    body = fields.summary
    if fields.test_plan:
        body += "\n\n## Test Plan\n" + fields.test_plan
    if fields.refs:
        body += "\n\n**Ref:** " + fields.refs[0]
    return body.strip()


class SubmitWorkflow:
    def __init__(
        self,
        repo: GitRepository,
        client: ForgeClient,
        config: dict,
        drafts: DraftStore,
        editor: MetadataEditor,
    ):
        self.repo = repo
        self.client = client
        self.config = config
        self.drafts = drafts
        self.editor = editor
        self.detector = BaseBranchDetector(repo, client, config)
        self.tracker = DependentTracker(client)
        self.remote = config.get("remote", "origin")

    def execute(self, options: SubmitOptions) -> SubmitResult:
        current = self.repo.current_branch()

        resume_path = None
        base_override = options.base_override
        if options.continue_mode:
            resume_path = self.drafts.latest(current)
            if resume_path is None:
                raise NoSavedTemplateError(f"no saved template found for branch '{current}'")
            console.print(f"[dim]Resuming saved template {resume_path}[/dim]")
            info = extract_branch_info(self.drafts.load(resume_path))
            if base_override is None and info is not None:
                base_override = info[1]

        open_requests = self.client.list_open()
        ctx = self.detector.detect(current, override=base_override, open_requests=open_requests)
        console.print(f"[bold]Base:[/bold] {escape(ctx.base_branch)} [dim]({escape(ctx.explanation)})[/dim]")

        dependents = self.tracker.find_dependents(current, open_requests)
        ctx.dependents = dependents.dependents
        ctx.show_dependents = dependents.has_dependents and self.config.get("show_stacking_warnings", True)
        if ctx.show_dependents:
            console.print(dependents.format_warning(), style="yellow", markup=False)

        existing = self.client.find_for_branch(current, open_requests)
        if existing is not None and not options.force_edit and not options.continue_mode:
            return self._fast_path(options, ctx, existing)
        return self._full_path(options, ctx, existing, resume_path)

    # ------------------------------------------------------------------ #
    # Fast path                                                            #
    # ------------------------------------------------------------------ #

    def _fast_path(self, options: SubmitOptions, ctx: StackingContext, existing: ReviewRequest) -> SubmitResult:
        logger.info("PR #%d exists for '%s', taking the fast path.", existing.number, ctx.current_branch)
        result = self._result(ctx, existing, created=False)
        result.fast_path = True
        self._sync_base(result, ctx, existing)

        self.repo.push(ctx.current_branch)
        result.pushed = True
        result.messages.append("Pushed new commits")

        if options.ready and result.request.draft:
            self.client.mark_ready(result.request)
            result.messages.append("Marked PR as ready for review")
        elif options.draft and not result.request.draft:
            self.client.convert_to_draft(result.request)
            result.messages.append("Converted PR to draft")
        return result

    # ------------------------------------------------------------------ #
    # Full path                                                            #
    # ------------------------------------------------------------------ #

    def _full_path(
        self,
        options: SubmitOptions,
        ctx: StackingContext,
        existing: ReviewRequest | None,
        resume_path: str | None,
    ) -> SubmitResult:
        analysis_base = f"{self.remote}/{ctx.base_branch}"
        viewer = self._viewer()

        def generate() -> str:
            analysis = self._analyze(analysis_base, ctx.current_branch)
            suggestions = self._suggest_reviewers(analysis_base, ctx.current_branch, viewer)
            draft_default = options.draft or (self.config.get("create_as_draft", False) and not options.ready)
            return generate_template(
                ctx,
                analysis,
                suggestions,
                draft=draft_default,
                linear_enabled=self.config.get("linear_enabled", False),
            )

        edited = self.editor.run(ctx, generate, resume_path=resume_path, interactive=not options.skip_editor)
        fields = edited.fields
        title = build_title(fields, self.config.get("linear_enabled", False))
        body = build_body(fields)

        if existing is not None:
            result = self._result(ctx, existing, created=False)
            self._sync_base(result, ctx, existing)
            result.request = self.client.update(result.request, title=title, body=body, parent=ctx.parent)
            self.repo.push(ctx.current_branch)
            result.pushed = True
            if fields.draft and not existing.draft:
                self.client.convert_to_draft(result.request)
                result.messages.append("Converted PR to draft")
            elif not fields.draft and existing.draft:
                self.client.mark_ready(result.request)
                result.messages.append("Marked PR as ready for review")
            result.messages.append(f"Updated PR #{result.request.number}")
        else:
            self.repo.push(ctx.current_branch)
            request = self.client.create(
                head=ctx.current_branch,
                base=ctx.base_branch,
                title=title,
                body=body,
                draft=fields.draft,
                parent=ctx.parent,
            )
            result = self._result(ctx, request, created=True)
            result.pushed = True
            result.messages.append(f"Created PR #{request.number}")

        self._assign_reviewers(result, fields.reviewers, viewer)
        self.drafts.remove(edited.saved_path)
        return result

    def _sync_base(self, result: SubmitResult, ctx: StackingContext, existing: ReviewRequest) -> None:
        """Patch a renamed base and report a rebased one, on either path."""
        current_base_sha = ""
        try:
            current_base_sha = self.client.branch_sha(existing.base.name)
        except OperationCancelled:
            raise
        except PRStackError as exc:
            logger.warning("Could not read tip of '%s', skipping rebase check: %s", existing.base.name, exc)

        update = self.tracker.handle_stacked_update(existing, ctx.base_branch, current_base_sha)
        result.request = update.request
        if update.base_updated:
            result.base_updated = True
            result.messages.append(f"Updated base branch: {update.old_base} → {update.new_base}")
        if update.rebase_detected:
            result.rebase_detected = True
            result.messages.append(f"Base branch '{ctx.base_branch}' was rebased; GitHub tracks it by name.")

    def _result(self, ctx: StackingContext, request: ReviewRequest, created: bool) -> SubmitResult:
        return SubmitResult(
            request=request,
            created=created,
            base_branch=ctx.base_branch,
            is_stacking=ctx.is_stacking,
            parent=ctx.parent,
            dependents=list(ctx.dependents),
        )

    def _analyze(self, base: str, head: str) -> CommitAnalysis | None:
        try:
            return analyze_commits(self.repo, base, head)
        except GitError as exc:
            logger.warning("Could not analyse commits in %s..%s: %s", base, head, exc)
            return None

    def _viewer(self) -> str | None:
        try:
            return self.client.current_user()
        except OperationCancelled:
            raise
        except PRStackError as exc:
            logger.warning("Could not determine the authenticated user: %s", exc)
            return None

    def _suggest_reviewers(self, base: str, head: str, viewer: str | None) -> list[str]:
        suggestions = [f"@{r.lstrip('@')}" for r in self.config.get("default_reviewers") or []]
        try:
            changed = self.repo.changed_files(base, head)
            suggestions += load_codeowners(self.repo).reviewers_for(changed, exclude=viewer)
        except GitError as exc:
            logger.debug("Skipping CODEOWNERS suggestions: %s", exc)

        unique = []
        for handle in suggestions:
            if viewer and handle.lstrip("@").lower() == viewer.lower():
                continue
            if handle not in unique:
                unique.append(handle)
        return unique

    def _assign_reviewers(self, result: SubmitResult, handles: list[str], viewer: str | None) -> None:
        users, teams = parse_reviewers(handles)
        if viewer:
            users = [u for u in users if u.lower() != viewer.lower()]
        if not users and not teams:
            return
        try:
            self.client.request_reviewers(result.request, users, teams)
        except OperationCancelled:
            raise
        except PRStackError as exc:
            result.warnings.append(f"Could not request reviewers: {exc}")
            return
        result.reviewers_added = [f"@{u}" for u in users] + [f"team:{t}" for t in teams]
        result.messages.append("Requested reviews from " + ", ".join(result.reviewers_added))
