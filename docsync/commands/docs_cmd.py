"""
CLI commands for local documents and version history.
"""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from docsync.documents import DEFAULT_STYLES, DocumentManager
from docsync.storage.local_store import LocalStore
from docsync.sync.models import SaveType, Snapshot
from docsync.sync.notifier import ConsoleNotifier


app = typer.Typer(help="Document and version history commands")
console = Console()


def _manager() -> DocumentManager:
    return DocumentManager.create(LocalStore(), notifier=ConsoleNotifier(console))


def _format_millis(value: str) -> str:
    try:
        return datetime.fromtimestamp(int(value) / 1000).strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        return value


async def _finish(manager: DocumentManager) -> None:
    # arm jobs left from earlier runs too, then let every retry run out
    try:
        await manager.retry_queue.restore()
        stranded = await manager.retry_queue.wait_until_empty()
    finally:
        manager.retry_queue.close()
    if stranded:
        console.print(f"[yellow]⚠ {stranded} retry job(s) still pending[/yellow]")


@app.command("list")
def list_documents():
    """
    List local documents.
    """
    documents = asyncio.run(_manager().list())
    if not documents:
        console.print("[dim]No documents[/dim]")
        return

    table = Table()
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Updated")
    for document_id, snapshot in documents:
        table.add_row(document_id, snapshot.name, _format_millis(snapshot.update))
    console.print(table)


@app.command()
def save(
    document_id: str = typer.Argument(..., help="Document ID"),
    markdown_file: Path = typer.Option(..., "--markdown", "-m", exists=True, help="Markdown file"),
    css_file: Optional[Path] = typer.Option(None, "--css", exists=True, help="Stylesheet file"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Document name"),
    auto: bool = typer.Option(False, "--auto", help="Record as an autosave"),
    wait: bool = typer.Option(False, "--wait", help="Wait for queued retries to finish"),
):
    """
    Save a document from files and sync it to GitHub.
    """
    async def _save() -> None:
        manager = _manager()
        existing = await manager.get(document_id)
        snapshot = Snapshot(
            name=name or (existing.name if existing else markdown_file.stem),
            markdown=markdown_file.read_text(encoding="utf-8"),
            css=css_file.read_text(encoding="utf-8") if css_file else (existing.css if existing else ""),
            styles=existing.styles if existing else dict(DEFAULT_STYLES),
        )
        save_type = SaveType.AUTO if auto else SaveType.MANUAL
        outcome = await manager.save(document_id, snapshot, save_type)
        if outcome.suppressed and await manager.retry_queue.get(document_id):
            console.print("[yellow]⚠ Remote branch moved; retry queued[/yellow]")
        if wait:
            await _finish(manager)
        else:
            manager.retry_queue.close()

    asyncio.run(_save())


@app.command()
def history(document_id: str = typer.Argument(..., help="Document ID")):
    """
    Show a document's version history (newest first).
    """
    versions = asyncio.run(_manager().history.list(document_id))
    if not versions:
        console.print("[dim]No history[/dim]")
        return

    table = Table()
    table.add_column("Version")
    table.add_column("Created")
    table.add_column("Type")
    table.add_column("Name")
    table.add_column("Hash")
    for version in versions:
        table.add_row(
            version.version_id,
            _format_millis(version.created_at),
            version.type.value,
            version.name,
            version.hash[:12],
        )
    console.print(table)


@app.command()
def rollback(
    document_id: str = typer.Argument(..., help="Document ID"),
    version_id: str = typer.Argument(..., help="Version ID to restore"),
):
    """
    Restore a previous version as a new save.
    """
    async def _rollback() -> bool:
        manager = _manager()
        try:
            return await manager.rollback(document_id, version_id)
        finally:
            manager.retry_queue.close()

    if not asyncio.run(_rollback()):
        raise typer.Exit(1)


@app.command()
def delete(document_id: str = typer.Argument(..., help="Document ID")):
    """
    Delete a document, its history, and any pending retry.
    """
    if not asyncio.run(_manager().delete(document_id)):
        console.print(f"[yellow]No document '{document_id}'[/yellow]")
        raise typer.Exit(1)


@app.command("export")
def export_documents(path: Path = typer.Argument(Path("docsync_data.json"), help="Output file")):
    """
    Export all documents to a JSON file.
    """
    count = asyncio.run(_manager().export_documents(path))
    console.print(f"[green]✓[/green] Exported {count} document(s) to {path}")


@app.command("import")
def import_documents(path: Path = typer.Argument(..., exists=True, help="JSON file to import")):
    """
    Import documents from a JSON file.
    """
    if not asyncio.run(_manager().import_documents(path)):
        raise typer.Exit(1)
