# backend/graphscan/cli/ingest.py
"""`graphscan-ingest`: post a snapshot file to the ingestion endpoint from CI."""

import asyncio
import sys
from typing import Optional

import click

from graphscan.core.config import settings
from graphscan.core.constants import IngestionSource
from graphscan.core.logging import setup_logging
from graphscan.services.ingest_client import (
    DEFAULT_MAX_ATTEMPTS,
    IngestClient,
    IngestClientError,
    build_payload,
    derive_idempotency_key,
    derive_metadata,
    derive_workspace_id,
    read_snapshot_file,
)

PREFIX = "[scan-ingestion]"


def blank_to_none(ctx, param, value):
    if value is None:
        return None
    value = value.strip()
    return value or None


@click.command("ingest")
@click.option("--url", envvar="INGEST_URL", required=True, help="Ingestion endpoint URL")
@click.option("--token", envvar="INGEST_BEARER_TOKEN", callback=blank_to_none, help="Bearer token")
@click.option(
    "--snapshot-file",
    envvar="SCAN_SNAPSHOT_FILE",
    default="scan-snapshot.json",
    show_default=True,
    type=click.Path(dir_okay=False),
)
@click.option("--idempotency-key", envvar="INGEST_IDEMPOTENCY_KEY", callback=blank_to_none)
@click.option("--build-reason", envvar="BUILD_REASON", callback=blank_to_none, hidden=True)
@click.option("--build-id", envvar="BUILD_BUILDID", callback=blank_to_none, hidden=True)
@click.option("--job-attempt", envvar="SYSTEM_JOBATTEMPT", callback=blank_to_none, hidden=True)
@click.option("--workspace-id", envvar="SCAN_WORKSPACE_ID", callback=blank_to_none)
@click.option("--team-project", envvar="SYSTEM_TEAMPROJECT", callback=blank_to_none, hidden=True)
@click.option("--repository-name", envvar="BUILD_REPOSITORY_NAME", callback=blank_to_none, hidden=True)
@click.option(
    "--source",
    envvar="INGEST_SOURCE",
    type=click.Choice([source.value for source in IngestionSource]),
    default=IngestionSource.PIPELINE.value,
    show_default=True,
)
@click.option("--branch", envvar=["INGEST_BRANCH", "BUILD_SOURCEBRANCHNAME", "BUILD_SOURCEBRANCH"], callback=blank_to_none)
@click.option("--commit-sha", envvar=["INGEST_COMMIT_SHA", "BUILD_SOURCEVERSION"], callback=blank_to_none)
@click.option("--run-id", envvar=["INGEST_RUN_ID", "BUILD_BUILDID"], callback=blank_to_none)
@click.option("--scanner-name", envvar="SCANNER_NAME", default=settings.SCANNER_NAME, show_default=True)
@click.option("--scanner-version", envvar="SCANNER_VERSION", callback=blank_to_none)
@click.option("--max-attempts", envvar="INGEST_MAX_ATTEMPTS", type=click.IntRange(min=1), default=DEFAULT_MAX_ATTEMPTS, show_default=True)
@click.option("--timeout-ms", envvar="INGEST_TIMEOUT_MS", type=click.IntRange(min=1), default=30_000, show_default=True)
@click.option("--initial-backoff-ms", envvar="INGEST_INITIAL_BACKOFF_MS", type=click.IntRange(min=1), default=2_000, show_default=True)
@click.option("--max-backoff-ms", envvar="INGEST_MAX_BACKOFF_MS", type=click.IntRange(min=1), default=15_000, show_default=True)
def ingest(
    url: str,
    token: Optional[str],
    snapshot_file: str,
    idempotency_key: Optional[str],
    build_reason: Optional[str],
    build_id: Optional[str],
    job_attempt: Optional[str],
    workspace_id: Optional[str],
    team_project: Optional[str],
    repository_name: Optional[str],
    source: str,
    branch: Optional[str],
    commit_sha: Optional[str],
    run_id: Optional[str],
    scanner_name: str,
    scanner_version: Optional[str],
    max_attempts: int,
    timeout_ms: int,
    initial_backoff_ms: int,
    max_backoff_ms: int,
) -> None:
    """Post a scanner snapshot with retries.

    \b
    Every option can be supplied through its environment variable, so a CI
    step usually runs `graphscan-ingest` with no arguments.
    """
    setup_logging(settings.LOG_LEVEL, stream=sys.stderr)

    try:
        snapshot = read_snapshot_file(snapshot_file)
        payload = build_payload(
            idempotency_key=derive_idempotency_key(idempotency_key, build_reason, build_id, job_attempt),
            workspace_id=derive_workspace_id(workspace_id, team_project, repository_name),
            source=IngestionSource(source),
            scanner_name=scanner_name,
            scanner_version=scanner_version,
            metadata=derive_metadata(branch, commit_sha, run_id),
            snapshot=snapshot,
        )

        click.echo(
            f"{PREFIX} Posting snapshot from {snapshot_file} for workspace {payload['workspaceId']} "
            f"with idempotency key {payload['idempotencyKey']}."
        )

        client = IngestClient(
            url,
            bearer_token=token,
            timeout=timeout_ms / 1000,
            max_attempts=max_attempts,
            initial_backoff=initial_backoff_ms / 1000,
            max_backoff=max_backoff_ms / 1000,
        )
        response = asyncio.run(client.post(payload))
    except (IngestClientError, OSError) as e:
        click.echo(f"{PREFIX} {e}", err=True)
        sys.exit(1)

    click.echo(f"{PREFIX} Completed with HTTP {response.status_code}: {response.text.strip()}")


def main() -> None:
    ingest()


if __name__ == "__main__":
    main()
