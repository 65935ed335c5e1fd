# backend/graphscan/services/ingestion_coordinator.py
"""
Ingestion coordinator: acquire -> finalize -> (mark failed).

Acquire is a transactional read-decide-write per idempotency key. Finalize
commits a new graph version at head + 1 and is idempotent when re-invoked
for a run that already succeeded. Any finalize failure is persisted on the
run so the same key and payload can be retried later.
"""

from dataclasses import dataclass
from typing import Optional, Union
from uuid import UUID

from graphscan.core.config import settings
from graphscan.core.constants import ScanRunStatus
from graphscan.core.exceptions import (
    DataIntegrityError,
    DuplicateIdempotencyKeyError,
    GraphVersionConflictError,
    IdempotencyConflictError,
    IngestionError,
    IngestionFailedError,
    InvalidRunStateError,
    PayloadMismatchError,
    ScanRunNotFoundError,
)
from graphscan.core.hashing import compute_snapshot_digest
from graphscan.core.logging import logger
from graphscan.db.base import utcnow
from graphscan.schemas.ingestion import IngestionMetadata, IngestionRequest, IngestionResult, LatestScanRun
from graphscan.schemas.snapshot import ScanSnapshot
from graphscan.scanners.snapshot import canonicalize_snapshot
from graphscan.services.graph_store import GraphStore
from graphscan.services.ingestion import (
    AcquireNew,
    AcquireRetry,
    Conflict,
    DeduplicatedSuccess,
    ExistingRunIdentity,
    FailureDetails,
    InProgress,
    SnapshotSummary,
    build_failure_details,
    decide_ingestion_attempt,
    normalize_idempotency_key,
    normalize_scanner_name,
    normalize_scanner_version,
    normalize_workspace_id,
    sanitize_metadata,
    summarize_snapshot,
)

MISSING_LINKAGE_MESSAGE = "scanRuns record is inconsistent: succeeded run has no graph version linkage."


@dataclass(frozen=True)
class PreparedSubmission:
    idempotency_key: str
    workspace_id: str
    source: str
    scanner_name: str
    scanner_version: Optional[str]
    metadata: Optional[IngestionMetadata]
    snapshot: ScanSnapshot
    summary: SnapshotSummary
    payload_hash: str


# Acquire outcomes

@dataclass(frozen=True)
class AcquiredRun:
    scan_run_id: UUID
    attempt_count: int


@dataclass(frozen=True)
class DeduplicatedRun:
    scan_run_id: UUID
    graph_version_id: UUID
    graph_version_number: int
    attempt_count: int


@dataclass(frozen=True)
class InFlightRun:
    scan_run_id: UUID
    attempt_count: int


AcquireResult = Union[AcquiredRun, DeduplicatedRun, InFlightRun]


@dataclass(frozen=True)
class FinalizedRun:
    scan_run_id: UUID
    graph_version_id: UUID
    graph_version_number: int
    attempt_count: int


def require_linkage(run) -> None:
    if run.graph_version_id is None or not isinstance(run.graph_version_number, int):
        raise DataIntegrityError(MISSING_LINKAGE_MESSAGE)


class IngestionCoordinator:
    """Exactly-once-effective ingestion of scanner snapshots"""

    def __init__(self, store: GraphStore):
        self.store = store

    def prepare(self, request: IngestionRequest) -> PreparedSubmission:
        """Normalize the request and compute its digest"""
        workspace_id = normalize_workspace_id(request.workspace_id)
        scanner_name = normalize_scanner_name(request.scanner.name)
        scanner_version = normalize_scanner_version(request.scanner.version)
        snapshot = canonicalize_snapshot(request.snapshot)

        return PreparedSubmission(
            idempotency_key=normalize_idempotency_key(request.idempotency_key),
            workspace_id=workspace_id,
            source=request.source.value,
            scanner_name=scanner_name,
            scanner_version=scanner_version,
            metadata=sanitize_metadata(request.metadata),
            snapshot=snapshot,
            summary=summarize_snapshot(snapshot),
            payload_hash=compute_snapshot_digest(
                workspace_id,
                scanner_name,
                snapshot.to_wire(),
                scanner_version=scanner_version,
            ),
        )

    async def ingest(self, request: IngestionRequest) -> IngestionResult:
        submission = self.prepare(request)
        context = {
            "idempotency_key": submission.idempotency_key,
            "workspace_id": submission.workspace_id,
        }

        acquisition = await self.acquire(submission)

        if isinstance(acquisition, DeduplicatedRun):
            logger.info("Deduplicated ingestion of an already committed snapshot", extra=context)
            return IngestionResult(
                status="succeeded",
                deduplicated=True,
                scan_run_id=acquisition.scan_run_id,
                graph_version_id=acquisition.graph_version_id,
                graph_version_number=acquisition.graph_version_number,
                attempt_count=acquisition.attempt_count,
            )

        if isinstance(acquisition, InFlightRun):
            logger.info("Ingestion for this key is still processing", extra=context)
            return IngestionResult(
                status="processing",
                deduplicated=True,
                scan_run_id=acquisition.scan_run_id,
                graph_version_id=None,
                graph_version_number=None,
                attempt_count=acquisition.attempt_count,
            )

        context["scan_run_id"] = acquisition.scan_run_id
        try:
            finalized = await self.finalize(
                acquisition.scan_run_id,
                submission.workspace_id,
                submission.payload_hash,
                submission.snapshot,
            )
        except Exception as e:
            details = build_failure_details(e)
            logger.error(f"Ingestion failed [{details.code}]: {details.message}", extra=context, exc_info=True)
            await self.mark_failed(acquisition.scan_run_id, details)

            if isinstance(e, IngestionError):
                raise
            raise IngestionFailedError(f"[{details.code}] {details.message}", code=details.code) from e

        logger.info(f"Committed graph version {finalized.graph_version_number}", extra=context)
        return IngestionResult(
            status="succeeded",
            deduplicated=False,
            scan_run_id=finalized.scan_run_id,
            graph_version_id=finalized.graph_version_id,
            graph_version_number=finalized.graph_version_number,
            attempt_count=finalized.attempt_count,
        )

    async def acquire(self, submission: PreparedSubmission) -> AcquireResult:
        """Claim the idempotency key, or report why this submission must not run"""
        try:
            async with self.store.transaction():
                return await self._acquire(submission)
        except DuplicateIdempotencyKeyError:
            # A concurrent submission inserted the key first; decide again against its row
            logger.info(
                "Lost idempotency key insert race, re-evaluating",
                extra={"idempotency_key": submission.idempotency_key},
            )
            async with self.store.transaction():
                return await self._acquire(submission)

    async def _acquire(self, submission: PreparedSubmission) -> AcquireResult:
        existing = await self.store.get_run_by_key(submission.idempotency_key, for_update=True)
        decision = decide_ingestion_attempt(
            ExistingRunIdentity(status=existing.status, payload_hash=existing.payload_hash) if existing else None,
            submission.payload_hash,
        )

        if isinstance(decision, Conflict):
            raise IdempotencyConflictError(decision.reason)

        if isinstance(decision, DeduplicatedSuccess):
            require_linkage(existing)
            return DeduplicatedRun(
                scan_run_id=existing.id,
                graph_version_id=existing.graph_version_id,
                graph_version_number=existing.graph_version_number,
                attempt_count=existing.attempt_count,
            )

        if isinstance(decision, InProgress):
            return InFlightRun(scan_run_id=existing.id, attempt_count=existing.attempt_count)

        now = utcnow()
        attempt_fields = {
            "payload_hash": submission.payload_hash,
            "workspace_id": submission.workspace_id,
            "scanner_name": submission.scanner_name,
            "scanner_version": submission.scanner_version,
            "source": submission.source,
            "status": ScanRunStatus.PROCESSING.value,
            "project_count": submission.summary.project_count,
            "library_count": submission.summary.library_count,
            "component_count": submission.summary.component_count,
            "dependency_count": submission.summary.dependency_count,
            "run_metadata": submission.metadata.model_dump(by_alias=True, exclude_none=True) if submission.metadata else None,
            "started_at": now,
            "completed_at": None,
        }

        if isinstance(decision, AcquireNew):
            run = await self.store.insert_run({
                **attempt_fields,
                "idempotency_key": submission.idempotency_key,
                "attempt_count": 1,
            })
            return AcquiredRun(scan_run_id=run.id, attempt_count=1)

        if isinstance(decision, AcquireRetry):
            attempt_count = existing.attempt_count + 1
            await self.store.patch_run(existing.id, {
                **attempt_fields,
                "attempt_count": attempt_count,
                "graph_version_id": None,
                "graph_version_number": None,
                "error_code": None,
                "error_message": None,
            })
            return AcquiredRun(scan_run_id=existing.id, attempt_count=attempt_count)

        raise TypeError(f"Unhandled ingestion decision: {decision!r}")

    async def finalize(
        self,
        scan_run_id: UUID,
        workspace_id: str,
        payload_hash: str,
        snapshot: ScanSnapshot,
    ) -> FinalizedRun:
        """
        Commit the snapshot as the workspace's next graph version.

        A concurrent finalize for another key can take head + 1 first; the
        transaction is then rolled back and retried against the new head, up
        to ``FINALIZE_MAX_ATTEMPTS`` times.
        """
        max_attempts = max(settings.FINALIZE_MAX_ATTEMPTS, 1)
        for attempt in range(1, max_attempts + 1):
            try:
                async with self.store.transaction():
                    return await self._finalize(scan_run_id, workspace_id, payload_hash, snapshot)
            except GraphVersionConflictError as e:
                if attempt == max_attempts:
                    raise
                logger.info(
                    f"Graph version {e.version} was committed concurrently, retrying finalize "
                    f"({attempt}/{max_attempts})",
                    extra={"scan_run_id": scan_run_id, "workspace_id": workspace_id},
                )

    async def _finalize(
        self,
        scan_run_id: UUID,
        workspace_id: str,
        payload_hash: str,
        snapshot: ScanSnapshot,
    ) -> FinalizedRun:
        run = await self.store.get_run(scan_run_id, for_update=True)
        if run is None:
            raise ScanRunNotFoundError("Scan run not found.")

        # A concurrent retry may have rewritten the run since it was acquired
        if run.workspace_id != workspace_id:
            raise PayloadMismatchError("workspaceId does not match the workspace for this scan run.")
        if run.payload_hash != payload_hash:
            raise PayloadMismatchError("payload hash mismatch for this scan run.")

        if run.status == ScanRunStatus.SUCCEEDED:
            require_linkage(run)
            return FinalizedRun(
                scan_run_id=run.id,
                graph_version_id=run.graph_version_id,
                graph_version_number=run.graph_version_number,
                attempt_count=run.attempt_count,
            )

        if run.status != ScanRunStatus.PROCESSING:
            raise InvalidRunStateError(f'Scan run cannot be finalized from status "{run.status}".')

        head = await self.store.get_head(workspace_id, for_update=True)
        next_version = (head.latest_version if head else 0) + 1
        summary = summarize_snapshot(snapshot)

        version = await self.store.insert_version(
            {
                "workspace_id": workspace_id,
                "version": next_version,
                "scan_run_id": run.id,
                "payload_hash": payload_hash,
                "schema_version": snapshot.schema_version,
                "workspace_config_path": snapshot.workspace_config_path,
                "project_count": summary.project_count,
                "library_count": summary.library_count,
                "component_count": summary.component_count,
                "dependency_count": summary.dependency_count,
            },
            snapshot,
        )
        await self.store.upsert_head(workspace_id, next_version)
        await self.store.patch_run(run.id, {
            "status": ScanRunStatus.SUCCEEDED.value,
            "graph_version_id": version.id,
            "graph_version_number": next_version,
            "error_code": None,
            "error_message": None,
            "completed_at": utcnow(),
        })

        return FinalizedRun(
            scan_run_id=run.id,
            graph_version_id=version.id,
            graph_version_number=next_version,
            attempt_count=run.attempt_count,
        )

    async def mark_failed(self, scan_run_id: UUID, details: FailureDetails) -> ScanRunStatus:
        """Record a failed attempt; a run that already succeeded is left untouched"""
        async with self.store.transaction():
            run = await self.store.get_run(scan_run_id, for_update=True)
            if run is None:
                raise ScanRunNotFoundError("Scan run not found.")

            if run.status == ScanRunStatus.SUCCEEDED:
                return ScanRunStatus.SUCCEEDED

            await self.store.patch_run(scan_run_id, {
                "status": ScanRunStatus.FAILED.value,
                "error_code": details.code,
                "error_message": details.message,
                "completed_at": utcnow(),
            })
            return ScanRunStatus.FAILED

    async def get_latest_successful_run(self, workspace_id: str) -> Optional[LatestScanRun]:
        run = await self.store.get_latest_succeeded_run(normalize_workspace_id(workspace_id))
        if run is None:
            return None

        require_linkage(run)
        return LatestScanRun(
            scan_run_id=run.id,
            workspace_id=run.workspace_id,
            graph_version_id=run.graph_version_id,
            graph_version_number=run.graph_version_number,
            payload_hash=run.payload_hash,
            scanner_name=run.scanner_name,
            scanner_version=run.scanner_version,
            source=run.source,
            attempt_count=run.attempt_count,
            project_count=run.project_count,
            library_count=run.library_count,
            component_count=run.component_count,
            dependency_count=run.dependency_count,
            started_at=run.started_at,
            completed_at=run.completed_at,
        )
