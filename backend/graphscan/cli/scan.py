# backend/graphscan/cli/scan.py
"""`graphscan-scan`: scan a workspace and print or write its snapshot."""

import json
import os
import sys
from typing import Optional

import click

from graphscan.core.config import settings
from graphscan.core.exceptions import ScannerError
from graphscan.core.logging import setup_logging
from graphscan.scanners import WorkspaceScanner, render_snapshot, write_snapshot


def report_error(code: str, message: str, details: Optional[dict] = None) -> None:
    click.echo(f"[{settings.SCANNER_NAME}:{code}] {message}", err=True)
    if details:
        click.echo(json.dumps(details, indent=2), err=True)


@click.command("scan")
@click.argument("workspace_arg", metavar="[WORKSPACE]", required=False)
@click.option(
    "--workspace", "-w",
    type=str,
    default=None,
    help="Workspace root (default: current directory)",
)
@click.option(
    "--output", "-o",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write JSON output to file instead of stdout",
)
@click.option(
    "--max-workers",
    type=click.IntRange(min=1),
    default=None,
    help="Scan projects in parallel with this many threads",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Log scan progress to stderr",
)
def scan(
    workspace_arg: Optional[str],
    workspace: Optional[str],
    output: Optional[str],
    max_workers: Optional[int],
    verbose: bool,
) -> None:
    """Scan a workspace and emit its dependency-graph snapshot.

    \b
    Examples:
        graphscan-scan                       # Scan current directory
        graphscan-scan ./my-workspace        # Scan specific path
        graphscan-scan -w . -o snapshot.json # Write to a file
    """
    setup_logging("DEBUG" if verbose else "WARNING", stream=sys.stderr)

    workspace_root = workspace or workspace_arg or os.getcwd()

    try:
        snapshot = WorkspaceScanner(max_workers=max_workers).scan(workspace_root)
        written_path = write_snapshot(output, snapshot) if output else None
    except ScannerError as e:
        report_error(e.code.value, e.message, e.details)
        sys.exit(1)
    except Exception as e:
        report_error("UNEXPECTED", str(e) or type(e).__name__)
        sys.exit(1)

    if written_path:
        click.echo(f"[{settings.SCANNER_NAME}] Snapshot written to {written_path}", err=True)
        return

    click.echo(render_snapshot(snapshot), nl=False)


def main() -> None:
    scan()


if __name__ == "__main__":
    main()
