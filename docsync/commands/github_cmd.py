"""
CLI commands for GitHub repository synchronization.
"""

import asyncio
from datetime import datetime

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from docsync.documents import DocumentManager
from docsync.storage.local_store import LocalStore
from docsync.sync.exceptions import RemoteError
from docsync.sync.github_client import GitHubClient
from docsync.sync.notifier import ConsoleNotifier
from docsync.sync.token_manager import TokenManager


app = typer.Typer(help="GitHub synchronization commands")
token_app = typer.Typer(help="Manage the GitHub token")
repo_app = typer.Typer(help="Manage the target repository")
queue_app = typer.Typer(help="Inspect and run the retry queue")
app.add_typer(token_app, name="token")
app.add_typer(repo_app, name="repo")
app.add_typer(queue_app, name="queue")
console = Console()


@token_app.command("set")
def set_token(token: str):
    """
    Set GitHub Personal Access Token.
    """
    # Validate token
    console.print("Validating token...", end="")
    try:
        if not GitHubClient(token).test_token():
            console.print(" [red]✗ Invalid token[/red]")
            raise typer.Exit(1)
    except RemoteError as e:
        console.print(f" [red]✗ Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(" [green]✓ Valid[/green]")

    location = asyncio.run(TokenManager(LocalStore()).set_token(token))
    console.print(f"[green]✓[/green] Token saved: {location}")


@token_app.command("clear")
def clear_token():
    """
    Remove the stored GitHub token.
    """
    deleted = asyncio.run(TokenManager(LocalStore()).delete_token())
    if deleted:
        console.print("[green]✓[/green] Token removed")
    else:
        console.print("[yellow]No stored token[/yellow]")


@repo_app.command("set")
def set_repo(full_name: str = typer.Argument(..., help="Repository as owner/repo")):
    """
    Set the repository documents are committed to.
    """
    repo = asyncio.run(TokenManager(LocalStore()).set_repo(full_name))
    if not repo.is_valid:
        console.print(f"[yellow]⚠ '{full_name}' is not in owner/repo form; sync will fail[/yellow]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Repository set: {repo.full_name}")


@repo_app.command("show")
def show_repo():
    """
    Show the configured repository.
    """
    repo = asyncio.run(TokenManager(LocalStore()).get_repo())
    if repo.is_empty:
        console.print("[yellow]No repository configured[/yellow]")
    elif not repo.is_valid:
        console.print("[red]✗ Stored repository is malformed[/red]")
    else:
        console.print(repo.full_name)


@app.command()
def status():
    """
    Show synchronization status.
    """
    manager = DocumentManager.create(LocalStore())
    status_data = asyncio.run(manager.sync_manager.status())

    token_panel = Panel(
        f"[{'green' if status_data['token_configured'] else 'red'}]"
        f"{'✓ Configured' if status_data['token_configured'] else '✗ Not configured'}[/]\n"
        f"Location: {status_data['token_location']}",
        title="GitHub Token",
        border_style="green" if status_data["token_configured"] else "red",
    )
    console.print(token_panel)

    table = Table(title="Repository", show_header=False, box=None)
    if not status_data["repo_configured"]:
        table.add_row("Repository:", "[yellow]Not configured[/yellow]")
    elif not status_data["repo_valid"]:
        table.add_row("Repository:", "[red]Malformed (expected owner/repo)[/red]")
    else:
        table.add_row("Repository:", status_data["repo"])
    table.add_row("Pending retries:", str(len(status_data["pending_jobs"])))
    table.add_row("Content hash:", status_data.get("hash_strategy", "N/A"))
    console.print("\n", table)


@queue_app.command("list")
def list_queue():
    """
    List pending retry jobs.
    """
    manager = DocumentManager.create(LocalStore())
    jobs = asyncio.run(manager.retry_queue.jobs())

    if not jobs:
        console.print("[dim]Retry queue is empty[/dim]")
        return

    table = Table()
    table.add_column("Document")
    table.add_column("Name")
    table.add_column("Attempt", justify="right")
    table.add_column("Next run")
    table.add_column("Save type")

    for job in jobs:
        next_run = datetime.fromtimestamp(job.next_run_at).strftime("%Y-%m-%d %H:%M:%S")
        table.add_row(job.id, job.snapshot.name, str(job.attempt), next_run, job.save_type.value)

    console.print(table)


@queue_app.command("run")
def run_queue():
    """
    Restore retry timers and wait until every job succeeds or is dropped.
    """
    async def _run() -> int:
        manager = DocumentManager.create(LocalStore(), notifier=ConsoleNotifier(console))
        restored = await manager.retry_queue.restore()
        if restored:
            console.print(f"Waiting on {restored} retry job(s)...")
            try:
                await manager.retry_queue.wait_until_empty()
            finally:
                manager.retry_queue.close()
        return restored

    restored = asyncio.run(_run())
    if restored:
        console.print("[green]✓ Retry queue drained[/green]")
    else:
        console.print("[dim]Retry queue is empty[/dim]")


if __name__ == "__main__":
    app()
