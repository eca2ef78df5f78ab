"""
docsync command-line entry point.
"""

import logging

import typer
from rich.logging import RichHandler

from docsync.commands import docs_cmd, github_cmd


app = typer.Typer(help="Versioned documents with GitHub sync")
app.add_typer(docs_cmd.app, name="docs")
app.add_typer(github_cmd.app, name="github")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs")):
    """
    Configure logging for all subcommands.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=verbose)],
    )
    # connection pool chatter
    logging.getLogger("urllib3").setLevel(logging.WARNING)
