"""diff command: create or update the pull request for the current branch."""

from __future__ import annotations

import threading

import click
from rich.console import Console
from rich.markup import escape

from prstack_core.errors import EditorCancelled, OperationCancelled, PRStackError, TemplateValidationError
from prstack_core.template.template import format_validation_errors
from prstack_cli.interrupts import cancel_on_interrupt

console = Console()


def _print_result(result) -> None:
    request = result.request
    verb = "Created" if result.created else "Updated"
    console.print(f"[green]✓ {verb} PR #{request.number}:[/green] {escape(request.title)}")
    console.print(f"  {request.url}")
    if result.is_stacking and result.parent is not None:
        console.print(f"  📚 Stacked on [bold]{result.base_branch}[/bold] (PR #{result.parent.number}: {escape(result.parent.title)})")
    else:
        console.print(f"  Base: [bold]{result.base_branch}[/bold]")
    for message in result.messages:
        console.print(f"  • {escape(message)}")
    for warning in result.warnings:
        console.print(f"  [yellow]⚠ {escape(warning)}[/yellow]")
    if result.dependents:
        numbers = ", ".join(f"#{d.number}" for d in result.dependents)
        console.print(f"  [yellow]Dependent PRs targeting this branch: {numbers}[/yellow]")


@click.command("diff")
@click.option("--draft", is_flag=True, help="Create the PR as a draft, or convert an existing PR to draft.")
@click.option("--ready", is_flag=True, help="Mark the PR as ready for review.")
@click.option("--edit", "force_edit", is_flag=True, help="Open the editor even when the PR already exists.")
@click.option("--no-edit", "skip_editor", is_flag=True, help="Do not open the editor; use generated values.")
@click.option("--continue", "continue_mode", is_flag=True, help="Resume the last template that failed validation.")
@click.option("--base", "base_override", default=None, help="Target this base branch instead of detecting one.")
@click.option("--repo", "repo_name", default=None, help="GitHub repository (owner/name). Defaults to the git remote.")
@click.pass_context
def diff_cmd(
    ctx,
    draft: bool,
    ready: bool,
    force_edit: bool,
    skip_editor: bool,
    continue_mode: bool,
    base_override: str | None,
    repo_name: str | None,
):
    """Submit the current branch for review.

    Detects whether the branch should stack on another open PR, opens an
    editor for the PR metadata, then creates or updates the PR. When a PR
    already exists the branch is just pushed, unless --edit is given.
    """
    from prstack_core.git import LocalRepository
    from prstack_core.template.drafts import DraftStore
    from prstack_core.template.editor import MetadataEditor
    from prstack_core.workflow import SubmitOptions, SubmitWorkflow
    from prstack_cli.factory import build_client, resolve_repo_name

    if draft and ready:
        raise click.UsageError("--draft and --ready are mutually exclusive.")
    if force_edit and skip_editor:
        raise click.UsageError("--edit and --no-edit are mutually exclusive.")

    config = ctx.obj["config"]
    try:
        local = LocalRepository.open(".", remote=config.get("remote", "origin"))
    except PRStackError as exc:
        raise click.ClickException(str(exc)) from exc

    cancel_event = threading.Event()
    client = build_client(ctx.obj, resolve_repo_name(repo_name, local), cancel_event=cancel_event)
    drafts = DraftStore()
    workflow = SubmitWorkflow(
        local,
        client,
        config,
        drafts,
        MetadataEditor(drafts, require_test_plan=config.get("require_test_plan", True)),
    )
    options = SubmitOptions(
        draft=draft,
        ready=ready,
        force_edit=force_edit,
        skip_editor=skip_editor,
        continue_mode=continue_mode,
        base_override=base_override,
    )

    try:
        with cancel_on_interrupt(cancel_event):
            result = workflow.execute(options)
    except EditorCancelled as exc:
        console.print(f"[dim]Cancelled: {escape(str(exc))}. Nothing was submitted.[/dim]")
        return
    except (OperationCancelled, KeyboardInterrupt):
        console.print("[dim]Interrupted. Nothing further was submitted.[/dim]")
        ctx.exit(130)
    except TemplateValidationError as exc:
        console.print(format_validation_errors(exc.errors, ctx=exc.context), style="red", markup=False)
        if exc.saved_path:
            console.print(f"Template saved to: {exc.saved_path}")
        ctx.exit(1)
    except PRStackError as exc:
        raise click.ClickException(str(exc)) from exc

    _print_result(result)
