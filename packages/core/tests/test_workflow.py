"""Tests for SubmitWorkflow, with git, GitHub and the editor mocked out."""

from unittest.mock import MagicMock

import pytest

from prstack_core.config import DEFAULT_CONFIG
from prstack_core.errors import APIError, EditorCancelled, NoSavedTemplateError
from prstack_core.models import BranchRef, ReviewRequest, StackingContext, TemplateFields
from prstack_core.template.editor import EditResult
from prstack_core.workflow import SubmitOptions, SubmitWorkflow, build_body, build_title

PARENT = ReviewRequest(
    number=42, title="Add auth", state="open", head=BranchRef("feature/auth", "p1"), base=BranchRef("main")
)


def _request(number=43, head="feature/b", base="feature/auth", base_sha="s1", draft=False):
    return ReviewRequest(
        number=number, title=f"PR {number}", state="open", head=BranchRef(head), base=BranchRef(base, base_sha), draft=draft
    )


def _stacked_ctx():
    return StackingContext(is_stacking=True, base_branch="feature/auth", current_branch="feature/b", parent=PARENT)


def _edit_result(**fields):
    defaults = {"title": "Add login", "test_plan": "Ran tests"}
    return EditResult(fields=TemplateFields(**{**defaults, **fields}), content="", saved_path="/tmp/prstack-diff-saved-1.md")


@pytest.fixture
def deps():
    repo = MagicMock()
    repo.current_branch.return_value = "feature/b"
    repo.commits_between.return_value = []
    repo.changed_files.return_value = []
    repo.read_file.return_value = None

    client = MagicMock()
    client.list_open.return_value = [PARENT]
    client.find_for_branch.return_value = None
    client.current_user.return_value = "alice"
    client.branch_sha.return_value = "s1"

    drafts = MagicMock()
    drafts.latest.return_value = None
    editor = MagicMock()
    editor.run.return_value = _edit_result()
    return repo, client, drafts, editor


def _workflow(deps, ctx=None, **config):
    repo, client, drafts, editor = deps
    workflow = SubmitWorkflow(repo, client, {**DEFAULT_CONFIG, **config}, drafts, editor)
    workflow.detector = MagicMock()
    workflow.detector.detect.return_value = ctx or _stacked_ctx()
    return workflow


class TestHelpers:
    def test_options_reject_draft_and_ready(self):
        with pytest.raises(ValueError):
            SubmitOptions(draft=True, ready=True)

    def test_build_title_with_linear_ref(self):
        fields = TemplateFields(title="Add login", refs=["ENG-1", "ENG-2"])
        assert build_title(fields, linear_enabled=True) == "Add login [ENG-1]"
        assert build_title(fields, linear_enabled=False) == "Add login"

    def test_build_body(self):
        fields = TemplateFields(summary="Adds login.", test_plan="Ran tests", refs=["ENG-1"])
        assert build_body(fields) == "Adds login.\n\n## Test Plan\nRan tests\n\n**Ref:** ENG-1"
        assert build_body(TemplateFields(test_plan="Ran tests")) == "## Test Plan\nRan tests"


class TestFastPath:
    def test_existing_pr_pushes_once_without_editor(self, deps):
        repo, client, drafts, editor = deps
        client.find_for_branch.return_value = _request()

        result = _workflow(deps).execute(SubmitOptions())

        assert result.fast_path is True
        assert result.created is False
        repo.push.assert_called_once_with("feature/b")
        editor.run.assert_not_called()
        client.update_base.assert_not_called()
        client.update.assert_not_called()
        assert result.parent is PARENT

    def test_renamed_base_is_patched(self, deps):
        repo, client, _, _ = deps
        existing = _request(base="feature/old")
        updated = _request(base="feature/auth")
        client.find_for_branch.return_value = existing
        client.update_base.return_value = updated

        result = _workflow(deps).execute(SubmitOptions())

        client.update_base.assert_called_once_with(existing, "feature/auth")
        assert result.base_updated is True
        assert result.request is updated
        assert "Updated base branch: feature/old → feature/auth" in result.messages
        repo.push.assert_called_once()

    def test_rebased_base_is_reported_only(self, deps):
        _, client, _, _ = deps
        client.find_for_branch.return_value = _request(base_sha="old")
        client.branch_sha.return_value = "new"

        result = _workflow(deps).execute(SubmitOptions())

        assert result.rebase_detected is True
        client.update_base.assert_not_called()

    def test_unreadable_base_tip_still_pushes(self, deps):
        repo, client, _, _ = deps
        client.find_for_branch.return_value = _request()
        client.branch_sha.side_effect = APIError("get branch", 404, "Not Found")

        result = _workflow(deps).execute(SubmitOptions())

        assert result.rebase_detected is False
        repo.push.assert_called_once()

    def test_ready_marks_draft_ready(self, deps):
        _, client, _, _ = deps
        existing = _request(draft=True)
        client.find_for_branch.return_value = existing

        result = _workflow(deps).execute(SubmitOptions(ready=True))

        client.mark_ready.assert_called_once_with(existing)
        assert "Marked PR as ready for review" in result.messages

    def test_draft_converts_ready_pr(self, deps):
        _, client, _, _ = deps
        existing = _request()
        client.find_for_branch.return_value = existing

        _workflow(deps).execute(SubmitOptions(draft=True))

        client.convert_to_draft.assert_called_once_with(existing)

    def test_shares_one_listing_and_reports_dependents(self, deps):
        _, client, _, _ = deps
        child = _request(number=50, head="feature/c", base="feature/b")
        client.list_open.return_value = [PARENT, child]
        client.find_for_branch.return_value = _request()
        workflow = _workflow(deps)

        result = workflow.execute(SubmitOptions())

        client.list_open.assert_called_once()
        assert workflow.detector.detect.call_args.kwargs["open_requests"] == [PARENT, child]
        assert result.dependents == [child]


class TestFullPath:
    def test_creates_stacked_pr(self, deps):
        repo, client, drafts, editor = deps
        order = []
        repo.push.side_effect = lambda branch: order.append("push")
        created = _request()
        client.create.side_effect = lambda **kwargs: order.append("create") or created

        result = _workflow(deps).execute(SubmitOptions())

        assert order == ["push", "create"]
        client.create.assert_called_once_with(
            head="feature/b",
            base="feature/auth",
            title="Add login",
            body="## Test Plan\nRan tests",
            draft=False,
            parent=PARENT,
        )
        assert result.created is True
        assert result.is_stacking is True
        assert result.request is created
        drafts.remove.assert_called_once_with("/tmp/prstack-diff-saved-1.md")
        assert editor.run.call_args.kwargs["interactive"] is True

    def test_requests_reviewers_without_viewer(self, deps):
        _, client, _, editor = deps
        created = _request()
        client.create.return_value = created
        editor.run.return_value = _edit_result(reviewers=["@bob", "@Alice", "@acme/platform"])

        result = _workflow(deps).execute(SubmitOptions())

        client.request_reviewers.assert_called_once_with(created, ["bob"], ["platform"])
        assert result.reviewers_added == ["@bob", "team:platform"]

    def test_reviewer_failure_is_a_warning(self, deps):
        _, client, drafts, editor = deps
        client.create.return_value = _request()
        client.request_reviewers.side_effect = APIError("request reviewers", 422, "not a collaborator")
        editor.run.return_value = _edit_result(reviewers=["@bob"])

        result = _workflow(deps).execute(SubmitOptions())

        assert result.created is True
        assert result.reviewers_added == []
        assert any("not a collaborator" in w for w in result.warnings)
        drafts.remove.assert_called_once()

    def test_force_edit_updates_existing_pr(self, deps):
        repo, client, _, editor = deps
        existing = _request(draft=True)
        client.find_for_branch.return_value = existing
        client.update.return_value = existing
        editor.run.return_value = _edit_result(draft=False)

        result = _workflow(deps).execute(SubmitOptions(force_edit=True))

        client.update.assert_called_once_with(
            existing, title="Add login", body="## Test Plan\nRan tests", parent=PARENT
        )
        client.mark_ready.assert_called_once_with(existing)
        client.create.assert_not_called()
        repo.push.assert_called_once()
        assert result.fast_path is False
        assert "Updated PR #43" in result.messages

    def test_force_edit_patches_renamed_base_through_tracker(self, deps):
        _, client, _, _ = deps
        existing = _request(base="feature/old")
        rebased = _request(base="feature/auth")
        client.find_for_branch.return_value = existing
        client.update_base.return_value = rebased
        client.update.return_value = rebased

        result = _workflow(deps).execute(SubmitOptions(force_edit=True))

        client.update_base.assert_called_once_with(existing, "feature/auth")
        assert client.update.call_args[0][0] is rebased
        assert result.base_updated is True
        assert "Updated base branch: feature/old → feature/auth" in result.messages

    def test_force_edit_reports_rebased_base(self, deps):
        _, client, _, _ = deps
        existing = _request(base_sha="old")
        client.find_for_branch.return_value = existing
        client.branch_sha.return_value = "new"
        client.update.return_value = existing

        result = _workflow(deps).execute(SubmitOptions(force_edit=True))

        assert result.rebase_detected is True
        client.update_base.assert_not_called()

    def test_skip_editor(self, deps):
        _, client, _, editor = deps
        client.create.return_value = _request()
        _workflow(deps).execute(SubmitOptions(skip_editor=True))
        assert editor.run.call_args.kwargs["interactive"] is False

    def test_generated_template_suggests_reviewers(self, deps):
        repo, client, _, editor = deps
        client.create.return_value = _request()
        repo.changed_files.return_value = ["src/app.py"]
        repo.read_file.side_effect = lambda path: "*.py @carol @alice\n" if path == ".github/CODEOWNERS" else None
        documents = []

        def run(ctx, generate, resume_path=None, interactive=True):
            documents.append(generate())
            return _edit_result()

        editor.run.side_effect = run
        _workflow(deps, default_reviewers=["@bob", "alice"], create_as_draft=True).execute(SubmitOptions())

        doc = documents[0]
        assert "# Suggestions: @bob, @carol" in doc
        assert "# Draft:\n# Set to 'true' or 'false' to control draft status\ntrue" in doc
        repo.commits_between.assert_called_once_with("origin/feature/auth", "feature/b")

    def test_editor_cancel_creates_nothing(self, deps):
        repo, client, drafts, editor = deps
        editor.run.side_effect = EditorCancelled("closed")

        with pytest.raises(EditorCancelled):
            _workflow(deps).execute(SubmitOptions())

        repo.push.assert_not_called()
        client.create.assert_not_called()
        drafts.remove.assert_not_called()


class TestContinueMode:
    def test_without_saved_template(self, deps):
        _, client, _, _ = deps
        with pytest.raises(NoSavedTemplateError):
            _workflow(deps).execute(SubmitOptions(continue_mode=True))
        client.list_open.assert_not_called()

    def test_resumes_saved_template(self, deps):
        _, client, drafts, editor = deps
        drafts.latest.return_value = "/tmp/prstack-diff-saved-9.md"
        drafts.load.return_value = "# Creating PR: feature/b → feature/auth\n"
        client.find_for_branch.return_value = _request()
        client.update.return_value = _request()
        workflow = _workflow(deps)

        result = workflow.execute(SubmitOptions(continue_mode=True))

        drafts.latest.assert_called_once_with("feature/b")
        assert workflow.detector.detect.call_args.kwargs["override"] == "feature/auth"
        assert editor.run.call_args.kwargs["resume_path"] == "/tmp/prstack-diff-saved-9.md"
        assert result.fast_path is False
        client.update.assert_called_once()
