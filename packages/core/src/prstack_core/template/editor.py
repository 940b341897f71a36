"""Interactive editing of the PR metadata document.

:class:`MetadataEditor` drives the document through
GENERATE (or RESUME) -> AWAIT_EDIT -> VALIDATE. The only state carried
between invocations is the saved document itself, so ``--continue`` is just
"load the draft, edit, validate again".
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from prstack_core.errors import EditorCancelled, NoEditorError, TemplateValidationError
from prstack_core.models import StackingContext, TemplateFields
from prstack_core.template.template import is_template_empty, parse_template, validate_fields

if TYPE_CHECKING:
    from prstack_core.template.drafts import DraftStore

logger = logging.getLogger(__name__)

_FALLBACK_EDITORS = ("vi", "vim", "nano", "emacs")


def resolve_editor() -> list[str]:
    """Editor command from $EDITOR or $VISUAL, else the first fallback on PATH."""
    editor = os.environ.get("EDITOR") or os.environ.get("VISUAL")
    if editor:
        return shlex.split(editor)
    for fallback in _FALLBACK_EDITORS:
        if shutil.which(fallback):
            return [fallback]
    raise NoEditorError("no editor available: set the $EDITOR environment variable")


def open_editor(content: str, command: list[str] | None = None) -> str:
    """Open ``content`` in the user's editor and return what they saved.

    Raises EditorCancelled if the editor fails, the file is left untouched,
    or the result is empty or only comments.
    """
    command = command or resolve_editor()
    fd, path = tempfile.mkstemp(prefix="prstack-diff-", suffix=".md")
    tmp = Path(path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        before = tmp.stat().st_mtime_ns

        result = subprocess.run([*command, path])
        if result.returncode != 0:
            raise EditorCancelled(f"editor exited with status {result.returncode}")

        edited = tmp.read_text(encoding="utf-8")
        if tmp.stat().st_mtime_ns == before and edited == content:
            raise EditorCancelled("editor closed without saving")
    finally:
        tmp.unlink(missing_ok=True)

    if is_template_empty(edited):
        raise EditorCancelled("template is empty")
    return edited


class EditorPhase(str, Enum):
    GENERATE = "generate"
    RESUME = "resume"
    AWAIT_EDIT = "await_edit"
    VALIDATE = "validate"


@dataclass
class EditResult:
    fields: TemplateFields
    content: str
    saved_path: str


class MetadataEditor:
    def __init__(
        self,
        drafts: DraftStore,
        require_test_plan: bool = True,
        edit: Callable[[str], str] = open_editor,
    ):
        self.drafts = drafts
        self.require_test_plan = require_test_plan
        self.edit = edit
        self.phase: EditorPhase | None = None

    def _enter(self, phase: EditorPhase) -> None:
        logger.debug("Metadata editor: %s", phase.value)
        self.phase = phase

    def run(
        self,
        ctx: StackingContext,
        generate: Callable[[], str],
        resume_path: str | None = None,
        interactive: bool = True,
    ) -> EditResult:
        """Produce validated TemplateFields for ``ctx``.

        ``generate`` is only called when there is nothing to resume. The
        edited document is saved before validation; on failure
        TemplateValidationError carries its path. When resuming, the same
        file is overwritten rather than creating a new draft.
        """
        if resume_path:
            self._enter(EditorPhase.RESUME)
            content = self.drafts.load(resume_path)
        else:
            self._enter(EditorPhase.GENERATE)
            content = generate()

        if interactive:
            self._enter(EditorPhase.AWAIT_EDIT)
            content = self.edit(content)
        saved_path = self.drafts.save(content, path=resume_path)

        self._enter(EditorPhase.VALIDATE)
        fields = parse_template(content)
        errors = validate_fields(fields, require_test_plan=self.require_test_plan, ctx=ctx)
        if errors:
            raise TemplateValidationError(errors, saved_path=saved_path, context=ctx)
        return EditResult(fields=fields, content=content, saved_path=saved_path)
