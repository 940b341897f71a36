"""PR metadata document: generation, parsing and validation.

The document is plain text with fixed ``# Section:`` markers. Every line
starting with ``#`` is ignored by the parser, so the header, hints and
reviewer suggestions can live in the same file the user edits.
"""

from __future__ import annotations

import os
import re

from prstack_core.models import CommitAnalysis, StackingContext, TemplateFields

MARKER_TITLE = "# Title:"
MARKER_SUMMARY = "# Summary:"
MARKER_TEST_PLAN = "# Test Plan:"
MARKER_REVIEWERS = "# Reviewers:"
MARKER_REF = "# Ref:"
MARKER_DRAFT = "# Draft:"
MARKER_BASE_BRANCH = "# Base Branch:"

SECTION_START = "# =========="
SECTION_END = "# ----------"

_SECTION_MARKERS = {
    MARKER_TITLE: "title",
    MARKER_SUMMARY: "summary",
    MARKER_TEST_PLAN: "test_plan",
    MARKER_REVIEWERS: "reviewers",
    MARKER_DRAFT: "draft",
    MARKER_REF: "refs",
}

_CREATING_RE = re.compile(r"^# Creating PR:\s*(?P<head>\S+)\s*→\s*(?P<base>\S+)")
_READ_ONLY = "(read-only)"


def generate_template(
    ctx: StackingContext,
    analysis: CommitAnalysis | None,
    reviewers: list[str] | None = None,
    draft: bool = False,
    linear_enabled: bool = False,
) -> str:
    """Render the editable document for ``ctx``.

    Title and summary are prefilled from ``analysis``. Test Plan is left
    empty. ``reviewers`` are shown as a comment only, so they are not
    assigned unless the user copies them into the section.
    """
    lines = [SECTION_START, "# Pull Request", "#", f"# Creating PR: {ctx.current_branch} → {ctx.base_branch}"]
    if ctx.is_stacking and ctx.parent is not None:
        lines.append(f"# 📚 Stacked on {ctx.base_branch} (PR #{ctx.parent.number}: {ctx.parent.title})")
    lines.append("#")

    if ctx.show_dependents and ctx.dependents:
        lines.append("# ⚠️  WARNING: Dependent PRs target this branch:")
        for dep in ctx.dependents:
            author = f" (@{dep.author})" if dep.author else ""
            lines.append(f"#    • PR #{dep.number}: {dep.title}{author}")
        lines.append("#")

    lines += [
        "# Fill in the fields below. Lines starting with # are ignored.",
        "# Required fields: Title, Test Plan",
        SECTION_END,
        "",
        MARKER_TITLE,
    ]
    if analysis is not None and analysis.title:
        lines.append(analysis.title)
    lines += ["", MARKER_SUMMARY]
    if analysis is not None and analysis.summary:
        lines.append(analysis.summary)
    else:
        lines.append("# Optional summary of the changes")
    lines += ["", MARKER_TEST_PLAN, "# Describe how you tested these changes", "", MARKER_REVIEWERS]
    lines.append("# Comma-separated list of @username or @org/team")
    if reviewers:
        lines.append("# Suggestions: " + ", ".join(f"@{r.lstrip('@')}" for r in reviewers))
    lines += ["", MARKER_DRAFT, "# Set to 'true' or 'false' to control draft status", "true" if draft else "false", ""]

    if linear_enabled:
        lines += [MARKER_REF, "# Comma-separated Linear issue IDs (e.g. ENG-123, ENG-456)", ""]

    lines += [f"{MARKER_BASE_BRANCH} {ctx.base_branch} {_READ_ONLY}", "", SECTION_START]
    if "vim" in os.environ.get("EDITOR", ""):
        lines.append("# vim: set filetype=gitcommit:")
    return "\n".join(lines) + "\n"


def _split_list(value: str) -> list[str]:
    return [part.strip() for part in value.replace("\n", ",").split(",") if part.strip()]


def _set_field(fields: TemplateFields, section: str, value: str) -> None:
    value = value.strip()
    if section in ("reviewers", "refs"):
        setattr(fields, section, _split_list(value))
    elif section == "draft":
        fields.draft = value.lower() == "true"
    else:
        setattr(fields, section, value)


def parse_template(content: str) -> TemplateFields:
    fields = TemplateFields()
    section: str | None = None
    buffer: list[str] = []

    for line in content.splitlines():
        marker = next((m for m in _SECTION_MARKERS if line.startswith(m)), None)
        if marker is not None:
            if section is not None:
                _set_field(fields, section, "\n".join(buffer))
            section, buffer = _SECTION_MARKERS[marker], []
            continue
        if line.startswith(MARKER_BASE_BRANCH):
            if section is not None:
                _set_field(fields, section, "\n".join(buffer))
            section, buffer = None, []
            fields.base_branch = line[len(MARKER_BASE_BRANCH) :].replace(_READ_ONLY, "").strip()
            continue
        if line.startswith("#"):
            continue
        if section is not None:
            buffer.append(line)

    if section is not None:
        _set_field(fields, section, "\n".join(buffer))
    return fields


def extract_branch_info(content: str) -> tuple[str, str] | None:
    """``(head, base)`` from the document header, or None if it has no header."""
    for line in content.splitlines():
        match = _CREATING_RE.match(line)
        if match:
            return match.group("head"), match.group("base")
    return None


def is_template_empty(content: str) -> bool:
    return all(not line.strip() or line.strip().startswith("#") for line in content.splitlines())


def validate_fields(
    fields: TemplateFields,
    require_test_plan: bool = True,
    ctx: StackingContext | None = None,
) -> list[str]:
    """Return human-readable validation errors; empty when ``fields`` is valid."""
    errors = []
    stacking = ctx is not None and ctx.is_stacking

    if not fields.title:
        errors.append(f"Title is required for stacked PR on {ctx.base_branch}" if stacking else "Title is required")

    if require_test_plan and not fields.test_plan:
        if stacking and ctx.parent is not None:
            errors.append(f"Test Plan is required for stacked PR on {ctx.base_branch} (PR #{ctx.parent.number})")
        elif stacking:
            errors.append(f"Test Plan is required for stacked PR on {ctx.base_branch}")
        else:
            errors.append("Test Plan is required")

    for reviewer in fields.reviewers:
        if not reviewer.startswith("@"):
            errors.append(f"invalid reviewer format: {reviewer} (should start with @)")

    return errors


def format_validation_errors(errors: list[str], ctx: StackingContext | None = None) -> str:
    if not errors:
        return ""
    if ctx is not None and ctx.is_stacking:
        lines = ["Template validation failed for stacked PR:"]
        stack = f"  Stack: {ctx.current_branch} → {ctx.base_branch}"
        if ctx.parent is not None:
            stack += f" (PR #{ctx.parent.number})"
        lines += [stack, ""]
    else:
        lines = ["Template validation failed:"]
    lines += [f"  • {e}" for e in errors]
    lines += ["", "Run 'prstack diff --continue' to fix the saved template."]
    return "\n".join(lines)
