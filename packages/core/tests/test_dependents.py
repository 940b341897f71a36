"""Tests for DependentTracker and base drift detection."""

from unittest.mock import MagicMock

from prstack_core.models import BranchRef, ReviewRequest
from prstack_core.stacking.dependents import DependentTracker, detect_base_changed, detect_rebase


def _request(number, head, base="main", base_sha="", state="open"):
    return ReviewRequest(
        number=number,
        title=f"PR {number}",
        state=state,
        head=BranchRef(head),
        base=BranchRef(base, base_sha),
    )


class TestFindDependents:
    def test_returns_only_requests_targeting_branch(self):
        requests_ = [
            _request(1, "feature/x", base="main"),
            _request(2, "feature/child", base="feature/parent"),
            _request(3, "feature/y", base="main"),
        ]
        info = DependentTracker(MagicMock()).find_dependents("feature/parent", requests_)
        assert [r.number for r in info.dependents] == [2]
        assert info.has_dependents is True

    def test_preserves_listing_order_and_is_idempotent(self):
        requests_ = [_request(n, f"feature/{n}", base="feature/parent") for n in (9, 3, 7)]
        tracker = DependentTracker(MagicMock())
        first = tracker.find_dependents("feature/parent", requests_)
        second = tracker.find_dependents("feature/parent", requests_)
        assert [r.number for r in first.dependents] == [9, 3, 7]
        assert first.dependents == second.dependents

    def test_ignores_closed_requests(self):
        requests_ = [_request(1, "feature/a", base="feature/parent", state="closed")]
        info = DependentTracker(MagicMock()).find_dependents("feature/parent", requests_)
        assert info.has_dependents is False
        assert info.format_warning() == ""

    def test_lists_when_not_supplied(self):
        client = MagicMock()
        client.list_open.return_value = [_request(1, "feature/a", base="feature/parent")]
        info = DependentTracker(client).find_dependents("feature/parent")
        client.list_open.assert_called_once()
        assert len(info.dependents) == 1

    def test_warning_names_each_dependent(self):
        info = DependentTracker(MagicMock()).find_dependents(
            "feature/parent", [_request(5, "feature/child", base="feature/parent")]
        )
        assert "#5" in info.format_warning()
        assert "feature/child" in info.format_warning()


class TestDriftDetection:
    def test_rebase_only(self):
        existing = _request(1, "feature/b", base="feature/a", base_sha="old")
        assert detect_rebase(existing, "new") is True
        assert detect_base_changed(existing, "feature/a") is False

    def test_rename_only(self):
        existing = _request(1, "feature/b", base="feature/a", base_sha="same")
        assert detect_base_changed(existing, "main") is True
        assert detect_rebase(existing, "same") is False

    def test_unknown_sha_is_not_a_rebase(self):
        assert detect_rebase(_request(1, "feature/b", base_sha="abc"), "") is False
        assert detect_rebase(_request(1, "feature/b", base_sha=""), "abc") is False


class TestHandleStackedUpdate:
    def test_rename_patches_base(self):
        client = MagicMock()
        existing = _request(1, "feature/b", base="feature/a", base_sha="s1")
        updated = _request(1, "feature/b", base="main")
        client.update_base.return_value = updated

        result = DependentTracker(client).handle_stacked_update(existing, "main", "s1")

        client.update_base.assert_called_once_with(existing, "main")
        assert result.base_updated is True
        assert result.rebase_detected is False
        assert result.request is updated
        assert (result.old_base, result.new_base) == ("feature/a", "main")

    def test_rebase_is_reported_without_write(self):
        client = MagicMock()
        existing = _request(1, "feature/b", base="feature/a", base_sha="s1")

        result = DependentTracker(client).handle_stacked_update(existing, "feature/a", "s2")

        client.update_base.assert_not_called()
        client.update.assert_not_called()
        assert result.rebase_detected is True
        assert result.base_updated is False

    def test_unchanged_base_does_nothing(self):
        client = MagicMock()
        existing = _request(1, "feature/b", base="main", base_sha="s1")
        result = DependentTracker(client).handle_stacked_update(existing, "main", "s1")
        client.update_base.assert_not_called()
        assert not result.base_updated and not result.rebase_detected
