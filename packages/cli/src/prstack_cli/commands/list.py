"""list command: show open pull requests with review and check status."""

from __future__ import annotations

import threading

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from prstack_core.errors import OperationCancelled, PRStackError
from prstack_cli.interrupts import cancel_on_interrupt

console = Console()

_REVIEW_STYLE = {
    "approved": "green",
    "changes_requested": "red",
    "commented": "yellow",
    "pending": "white",
    "review_required": "dim",
}
_CHECK_STYLE = {
    "success": "green",
    "failure": "red",
    "in_progress": "yellow",
    "neutral": "white",
    "pending": "dim",
}


@click.command("list")
@click.option("--repo", "repo_name", default=None, help="GitHub repository (owner/name). Defaults to the git remote.")
@click.option("--author", default=None, help="Only show PRs opened by this login.")
@click.option("--no-status", is_flag=True, help="Skip fetching reviews and checks.")
@click.pass_context
def list_cmd(ctx, repo_name: str | None, author: str | None, no_status: bool):
    """List open pull requests, marking the ones stacked on another PR."""
    from prstack_core.git import LocalRepository
    from prstack_cli.factory import build_client, resolve_repo_name

    config = ctx.obj["config"]
    if repo_name is None:
        try:
            local = LocalRepository.open(".", remote=config.get("remote", "origin"))
        except PRStackError as exc:
            raise click.UsageError(f"{exc}. Pass --repo owner/name.") from exc
        repo_name = resolve_repo_name(None, local)

    cancel_event = threading.Event()
    client = build_client(ctx.obj, repo_name, cancel_event=cancel_event)
    try:
        with cancel_on_interrupt(cancel_event):
            requests_ = client.list_open()
            if author:
                requests_ = [r for r in requests_ if r.author.lower() == author.lower().lstrip("@")]
            if not no_status:
                client.enrich_many(requests_)
    except (OperationCancelled, KeyboardInterrupt):
        console.print("[dim]Interrupted.[/dim]")
        ctx.exit(130)
    except PRStackError as exc:
        raise click.ClickException(str(exc)) from exc

    if not requests_:
        console.print("[yellow]No open pull requests found.[/yellow]")
        return

    heads = {r.head.name for r in requests_}
    table = Table(title=f"Open PRs — {repo_name}", show_header=True, header_style="bold cyan")
    table.add_column("PR", style="bold", width=6)
    table.add_column("Title", max_width=40)
    table.add_column("Branch", max_width=40)
    table.add_column("Author", width=16)
    if not no_status:
        table.add_column("Review", width=18)
        table.add_column("Checks", width=12)

    for r in requests_:
        stacked = "↳ " if r.base.name in heads else ""
        title = f"[dim](draft)[/dim] {escape(r.title)}" if r.draft else escape(r.title)
        row = [f"#{r.number}", title, f"{stacked}{r.head.name} → {r.base.name}", r.author]
        if not no_status:
            review, checks = r.review_status.value, r.check_status.value
            review_style, check_style = _REVIEW_STYLE[review], _CHECK_STYLE[checks]
            row += [f"[{review_style}]{review}[/{review_style}]", f"[{check_style}]{checks}[/{check_style}]"]
        table.add_row(*row)

    console.print(table)
