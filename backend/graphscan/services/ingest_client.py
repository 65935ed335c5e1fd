# backend/graphscan/services/ingest_client.py
"""
Outbound client that posts a snapshot file to the ingestion endpoint.

The payload is built from CI environment values (see
``graphscan.cli.ingest``). Transport errors, timeouts and transient HTTP
statuses are retried with capped exponential backoff; every other non-2xx
status is terminal.
"""

import asyncio
import json
import re
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from graphscan.core.constants import TRANSIENT_HTTP_STATUSES, IngestionSource
from graphscan.core.logging import logger

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_ATTEMPTS = 4
DEFAULT_INITIAL_BACKOFF_SECONDS = 2.0
DEFAULT_MAX_BACKOFF_SECONDS = 15.0
MAX_IDEMPOTENCY_KEY_LENGTH = 128
MAX_WORKSPACE_ID_LENGTH = 128
MAX_RESPONSE_SUMMARY_LENGTH = 500

SNAPSHOT_ARRAY_FIELDS = ("projects", "libs", "components", "dependencies")


class IngestClientError(Exception):
    """Terminal failure: bad input, non-retryable response or exhausted attempts"""


def sanitize_idempotency_key(key: str) -> str:
    sanitized = re.sub(r"[^A-Za-z0-9._:-]", "-", key)
    if not sanitized:
        raise IngestClientError("INGEST_IDEMPOTENCY_KEY must contain at least one valid character.")
    return sanitized[:MAX_IDEMPOTENCY_KEY_LENGTH]


def derive_idempotency_key(
    explicit: Optional[str] = None,
    build_reason: Optional[str] = None,
    build_id: Optional[str] = None,
    job_attempt: Optional[str] = None,
) -> str:
    """Explicit key, else ``ci-<reason>-<buildId>-attempt-<n>``"""
    if explicit:
        return sanitize_idempotency_key(explicit)

    reason = (build_reason or "manual").lower()
    return sanitize_idempotency_key(f"ci-{reason}-{build_id or 'local'}-attempt-{job_attempt or '1'}")


def derive_workspace_id(
    explicit: Optional[str] = None,
    team_project: Optional[str] = None,
    repository_name: Optional[str] = None,
) -> str:
    if explicit:
        return explicit[:MAX_WORKSPACE_ID_LENGTH]
    return f"{team_project or 'local'}/{repository_name or 'workspace'}"[:MAX_WORKSPACE_ID_LENGTH]


def derive_metadata(
    branch: Optional[str] = None,
    commit_sha: Optional[str] = None,
    run_id: Optional[str] = None,
) -> Optional[Dict[str, str]]:
    metadata = {
        key: value
        for key, value in (("branch", branch), ("commitSha", commit_sha), ("runId", run_id))
        if value
    }
    return metadata or None


def read_snapshot_file(snapshot_path: str) -> Dict[str, Any]:
    """Load a snapshot and check its envelope; the server validates the rest"""
    with open(snapshot_path, "r", encoding="utf-8") as handle:
        try:
            parsed = json.load(handle)
        except json.JSONDecodeError as e:
            raise IngestClientError(f"Snapshot file {snapshot_path} is not valid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise IngestClientError("Snapshot JSON must be an object.")
    if parsed.get("schemaVersion") != 1:
        raise IngestClientError("Snapshot schemaVersion must be 1.")
    if not all(isinstance(parsed.get(field), list) for field in SNAPSHOT_ARRAY_FIELDS):
        raise IngestClientError(
            "Snapshot JSON must include array fields: projects, libs, components, dependencies."
        )
    return parsed


def build_payload(
    idempotency_key: str,
    workspace_id: str,
    source: IngestionSource,
    scanner_name: str,
    snapshot: Dict[str, Any],
    scanner_version: Optional[str] = None,
    metadata: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    scanner: Dict[str, str] = {"name": scanner_name}
    if scanner_version:
        scanner["version"] = scanner_version

    payload: Dict[str, Any] = {
        "idempotencyKey": idempotency_key,
        "workspaceId": workspace_id,
        "source": source.value,
        "scanner": scanner,
    }
    if metadata:
        payload["metadata"] = metadata
    payload["snapshot"] = snapshot
    return payload


def compute_retry_delay(attempt: int, initial_backoff: float, max_backoff: float) -> float:
    """``initial * 2^(attempt-1)`` capped at ``max_backoff``"""
    return min(initial_backoff * 2 ** max(attempt - 1, 0), max_backoff)


def format_response_body(body_text: str) -> str:
    normalized = re.sub(r"\s+", " ", body_text).strip()
    if not normalized:
        return "empty response body"
    if len(normalized) > MAX_RESPONSE_SUMMARY_LENGTH:
        return normalized[:MAX_RESPONSE_SUMMARY_LENGTH] + "..."
    return normalized


class IngestClient:
    """Posts ingestion payloads with bounded retries"""

    def __init__(
        self,
        url: str,
        bearer_token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        initial_backoff: float = DEFAULT_INITIAL_BACKOFF_SECONDS,
        max_backoff: float = DEFAULT_MAX_BACKOFF_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.url = url
        self.bearer_token = bearer_token
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.sleep = sleep
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"content-type": "application/json"}
        if self.bearer_token:
            headers["authorization"] = f"Bearer {self.bearer_token}"
        return headers

    async def post(self, payload: Dict[str, Any]) -> httpx.Response:
        """
        Post ``payload`` until a 200/202 arrives or attempts run out.

        Returns:
            The successful response

        Raises:
            IngestClientError: on a terminal status or after the last attempt
        """
        body = json.dumps(payload)

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for attempt in range(1, self.max_attempts + 1):
                label = f"attempt {attempt}/{self.max_attempts}"

                try:
                    response = await client.post(self.url, content=body, headers=self._headers())
                except httpx.TransportError as e:
                    # Connect errors, read errors and timeouts
                    if attempt == self.max_attempts:
                        raise IngestClientError(f"[{label}] {type(e).__name__}: {e}") from e
                    delay = compute_retry_delay(attempt, self.initial_backoff, self.max_backoff)
                    logger.warning(f"[{label}] {type(e).__name__}: {e}. Retrying in {delay}s")
                    await self.sleep(delay)
                    continue

                if response.status_code in (200, 202):
                    logger.info(
                        f"[{label}] Completed with HTTP {response.status_code}: "
                        f"{format_response_body(response.text)}"
                    )
                    return response

                summary = format_response_body(response.text)
                if response.status_code not in TRANSIENT_HTTP_STATUSES or attempt == self.max_attempts:
                    raise IngestClientError(
                        f"[{label}] HTTP {response.status_code} from scanner ingestion endpoint: {summary}"
                    )

                delay = compute_retry_delay(attempt, self.initial_backoff, self.max_backoff)
                logger.warning(f"[{label}] Transient HTTP {response.status_code}. Retrying in {delay}s")
                await self.sleep(delay)

        raise IngestClientError("Exhausted ingestion attempts without a terminal result.")
