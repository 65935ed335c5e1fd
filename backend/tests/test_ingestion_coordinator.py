# tests/test_ingestion_coordinator.py
"""
Ingestion coordinator tests against the in-memory graph store
Tests: idempotent replay, conflicts, retry after failure, versioning, races
"""

import sqlite3
from datetime import timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from conftest import make_request, make_snapshot
from graphscan.core.config import settings
from graphscan.core.exceptions import (
    DataIntegrityError,
    IdempotencyConflictError,
    IngestionFailedError,
    InvalidRunStateError,
    PayloadMismatchError,
    ScanRunNotFoundError,
)
from graphscan.db.base import utcnow
from graphscan.schemas.ingestion import IngestionRequest
from graphscan.services.ingestion import FailureDetails
from graphscan.services.ingestion_coordinator import IngestionCoordinator


def request_for(**kwargs) -> IngestionRequest:
    return IngestionRequest.model_validate(make_request(**kwargs))


def seed_run(store, coordinator, request: IngestionRequest, **fields):
    """Insert a run for ``request`` directly, as if written by another writer"""
    submission = coordinator.prepare(request)
    run = SimpleNamespace(
        id=uuid4(),
        idempotency_key=submission.idempotency_key,
        payload_hash=submission.payload_hash,
        workspace_id=submission.workspace_id,
        scanner_name=submission.scanner_name,
        scanner_version=submission.scanner_version,
        source=submission.source,
        status="processing",
        attempt_count=1,
        project_count=1,
        library_count=0,
        component_count=0,
        dependency_count=0,
        run_metadata=None,
        graph_version_id=None,
        graph_version_number=None,
        error_code=None,
        error_message=None,
        started_at=utcnow(),
        completed_at=None,
    )
    for key, value in fields.items():
        setattr(run, key, value)
    store.runs[run.id] = run
    return run


class TestIdempotentIngestion:
    """Test replay and conflict handling per idempotency key"""

    async def test_first_ingest_commits_version_one(self, memory_store):
        coordinator = IngestionCoordinator(memory_store)

        result = await coordinator.ingest(request_for())

        assert result.status == "succeeded"
        assert result.deduplicated is False
        assert result.graph_version_number == 1
        assert result.attempt_count == 1

        run = memory_store.runs[result.scan_run_id]
        assert run.status == "succeeded"
        assert run.graph_version_id == result.graph_version_id
        assert run.completed_at is not None
        assert run.run_metadata == {"branch": "main", "commitSha": "abc123", "runId": "42"}
        assert memory_store.heads["team/repo"].latest_version == 1

    async def test_replay_is_deduplicated(self, memory_store):
        coordinator = IngestionCoordinator(memory_store)
        first = await coordinator.ingest(request_for())

        replay = await coordinator.ingest(request_for())

        assert replay.deduplicated is True
        assert replay.status == "succeeded"
        assert replay.scan_run_id == first.scan_run_id
        assert replay.graph_version_id == first.graph_version_id
        assert replay.graph_version_number == 1
        assert await memory_store.list_versions("team/repo") == [1]

    async def test_replay_with_whitespace_and_reordered_arrays(self, memory_store):
        """Test normalization happens before hashing"""
        coordinator = IngestionCoordinator(memory_store)
        snapshot = make_snapshot(("a", "b", "c"), edges=[("a", "b"), ("a", "c")])
        await coordinator.ingest(request_for(snapshot=snapshot))

        reordered = dict(snapshot, projects=list(reversed(snapshot["projects"])))
        replay = await coordinator.ingest(request_for(
            idempotency_key="  ci-build-1-attempt-1 ",
            workspace_id=" team/repo ",
            snapshot=reordered,
        ))

        assert replay.deduplicated is True

    async def test_conflicting_payload_is_rejected_without_mutation(self, memory_store):
        coordinator = IngestionCoordinator(memory_store)
        first = await coordinator.ingest(request_for())
        before = (dict(vars(memory_store.runs[first.scan_run_id])), await memory_store.list_versions("team/repo"))

        with pytest.raises(IdempotencyConflictError) as exc_info:
            await coordinator.ingest(request_for(snapshot=make_snapshot(("portal", "admin"))))

        assert exc_info.value.status_code == 409
        assert exc_info.value.message == "Idempotency key reuse detected with a different scanner snapshot payload."
        after = (dict(vars(memory_store.runs[first.scan_run_id])), await memory_store.list_versions("team/repo"))
        assert after == before

    async def test_conflict_while_processing(self, memory_store):
        coordinator = IngestionCoordinator(memory_store)
        seed_run(memory_store, coordinator, request_for())

        with pytest.raises(IdempotencyConflictError):
            await coordinator.ingest(request_for(snapshot=make_snapshot(("other",))))

    async def test_in_flight_run_reports_processing(self, memory_store):
        """Test a stuck processing run is never reclaimed"""
        coordinator = IngestionCoordinator(memory_store)
        run = seed_run(memory_store, coordinator, request_for(), started_at=utcnow() - timedelta(days=1))

        result = await coordinator.ingest(request_for())

        assert result.status == "processing"
        assert result.deduplicated is True
        assert result.scan_run_id == run.id
        assert result.graph_version_id is None
        assert result.graph_version_number is None
        assert memory_store.runs[run.id].status == "processing"
        assert memory_store.versions == {}


class TestRetryAfterFailure:
    """Test failed finalize handling"""

    async def test_failed_finalize_marks_run_failed(self, memory_store):
        memory_store.fail_next_version_insert = RuntimeError("disk full")
        coordinator = IngestionCoordinator(memory_store)

        with pytest.raises(IngestionFailedError) as exc_info:
            await coordinator.ingest(request_for())

        assert exc_info.value.code == "INGESTION_FAILED"
        assert exc_info.value.message == "[INGESTION_FAILED] disk full"

        (run,) = memory_store.runs.values()
        assert run.status == "failed"
        assert run.error_code == "INGESTION_FAILED"
        assert run.error_message == "disk full"
        assert run.completed_at is not None
        assert memory_store.versions == {}
        assert memory_store.heads == {}

    async def test_retry_reuses_run_and_increments_attempt(self, memory_store):
        memory_store.fail_next_version_insert = RuntimeError("disk full")
        coordinator = IngestionCoordinator(memory_store)
        with pytest.raises(IngestionFailedError):
            await coordinator.ingest(request_for())
        (failed_run,) = memory_store.runs.values()

        result = await coordinator.ingest(request_for())

        assert result.status == "succeeded"
        assert result.deduplicated is False
        assert result.scan_run_id == failed_run.id
        assert result.attempt_count == 2
        assert result.graph_version_number == 1

        run = memory_store.runs[failed_run.id]
        assert run.error_code is None
        assert run.error_message is None
        assert len(memory_store.runs) == 1

    async def test_failed_key_with_new_payload_conflicts(self, memory_store):
        memory_store.fail_next_version_insert = RuntimeError("disk full")
        coordinator = IngestionCoordinator(memory_store)
        with pytest.raises(IngestionFailedError):
            await coordinator.ingest(request_for())

        with pytest.raises(IdempotencyConflictError):
            await coordinator.ingest(request_for(snapshot=make_snapshot(("changed",))))

    async def test_database_error_is_recorded_without_statement(self, memory_store):
        """Test a driver error is stored under the default code without SQL text"""
        memory_store.fail_next_version_insert = OperationalError(
            "INSERT INTO graph_versions (id, workspace_id) VALUES (?, ?)",
            ("7f1c", "team/repo"),
            sqlite3.OperationalError("database is locked"),
        )
        coordinator = IngestionCoordinator(memory_store)

        with pytest.raises(IngestionFailedError) as exc_info:
            await coordinator.ingest(request_for())

        assert exc_info.value.code == "INGESTION_FAILED"
        assert exc_info.value.message == "[INGESTION_FAILED] OperationalError: database is locked"
        (run,) = memory_store.runs.values()
        assert run.status == "failed"
        assert run.error_code == "INGESTION_FAILED"
        assert "INSERT" not in run.error_message
        assert "team/repo" not in run.error_message


class TestVersioning:
    """Test per-workspace version numbering"""

    async def test_distinct_keys_version_independently(self, memory_store):
        """Test identical content under two keys yields two versions, replay yields the first"""
        coordinator = IngestionCoordinator(memory_store)

        first = await coordinator.ingest(request_for(idempotency_key="K1"))
        second = await coordinator.ingest(request_for(idempotency_key="K2"))
        replay = await coordinator.ingest(request_for(idempotency_key="K1"))

        assert (first.graph_version_number, second.graph_version_number) == (1, 2)
        assert replay.deduplicated is True
        assert replay.graph_version_number == 1
        assert await memory_store.list_versions("team/repo") == [1, 2]

    async def test_versions_are_contiguous_across_failures(self, memory_store):
        coordinator = IngestionCoordinator(memory_store)

        for index in range(5):
            if index == 2:
                memory_store.fail_next_version_insert = RuntimeError("transient")
                with pytest.raises(IngestionFailedError):
                    await coordinator.ingest(request_for(idempotency_key=f"key-{index}"))
            await coordinator.ingest(request_for(idempotency_key=f"key-{index}"))

        assert await memory_store.list_versions("team/repo") == [1, 2, 3, 4, 5]
        assert memory_store.heads["team/repo"].latest_version == 5

    async def test_concurrent_version_conflict_is_retried(self, memory_store):
        """Test finalize re-reads the head after another key takes the version number"""
        memory_store.version_conflicts_left = 2
        coordinator = IngestionCoordinator(memory_store)

        result = await coordinator.ingest(request_for())

        assert result.status == "succeeded"
        assert result.graph_version_number == 1
        assert result.attempt_count == 1
        assert memory_store.version_insert_attempts == 3
        assert await memory_store.list_versions("team/repo") == [1]

    async def test_exhausted_version_conflicts_fail_the_run(self, memory_store):
        memory_store.version_conflicts_left = settings.FINALIZE_MAX_ATTEMPTS
        coordinator = IngestionCoordinator(memory_store)

        with pytest.raises(IngestionFailedError) as exc_info:
            await coordinator.ingest(request_for())

        assert exc_info.value.code == "GRAPH_VERSION_CONFLICT"
        assert memory_store.version_insert_attempts == settings.FINALIZE_MAX_ATTEMPTS
        (run,) = memory_store.runs.values()
        assert run.status == "failed"
        assert run.error_code == "GRAPH_VERSION_CONFLICT"

        retried = await coordinator.ingest(request_for())
        assert retried.status == "succeeded"
        assert retried.attempt_count == 2

    async def test_workspaces_have_separate_heads(self, memory_store):
        coordinator = IngestionCoordinator(memory_store)

        await coordinator.ingest(request_for(idempotency_key="a-1", workspace_id="team/a"))
        result = await coordinator.ingest(request_for(idempotency_key="b-1", workspace_id="team/b"))

        assert result.graph_version_number == 1
        assert await memory_store.list_versions("team/a") == [1]


class TestFinalize:
    """Test finalize guards"""

    async def test_finalize_is_idempotent_for_succeeded_run(self, memory_store):
        coordinator = IngestionCoordinator(memory_store)
        request = request_for()
        result = await coordinator.ingest(request)
        submission = coordinator.prepare(request)

        again = await coordinator.finalize(
            result.scan_run_id, submission.workspace_id, submission.payload_hash, submission.snapshot,
        )

        assert again.graph_version_id == result.graph_version_id
        assert await memory_store.list_versions("team/repo") == [1]

    async def test_finalize_rejects_other_workspace(self, memory_store):
        coordinator = IngestionCoordinator(memory_store)
        request = request_for()
        run = seed_run(memory_store, coordinator, request)
        submission = coordinator.prepare(request)

        with pytest.raises(PayloadMismatchError) as exc_info:
            await coordinator.finalize(run.id, "someone/else", submission.payload_hash, submission.snapshot)

        assert exc_info.value.message == "workspaceId does not match the workspace for this scan run."

    async def test_finalize_rejects_other_hash(self, memory_store):
        coordinator = IngestionCoordinator(memory_store)
        request = request_for()
        run = seed_run(memory_store, coordinator, request)
        submission = coordinator.prepare(request)

        with pytest.raises(PayloadMismatchError) as exc_info:
            await coordinator.finalize(run.id, submission.workspace_id, "00000000", submission.snapshot)

        assert exc_info.value.message == "payload hash mismatch for this scan run."

    async def test_finalize_rejects_failed_run(self, memory_store):
        coordinator = IngestionCoordinator(memory_store)
        request = request_for()
        run = seed_run(memory_store, coordinator, request, status="failed")
        submission = coordinator.prepare(request)

        with pytest.raises(InvalidRunStateError) as exc_info:
            await coordinator.finalize(run.id, submission.workspace_id, submission.payload_hash, submission.snapshot)

        assert exc_info.value.message == 'Scan run cannot be finalized from status "failed".'

    async def test_finalize_missing_run(self, memory_store):
        coordinator = IngestionCoordinator(memory_store)
        submission = coordinator.prepare(request_for())

        with pytest.raises(ScanRunNotFoundError):
            await coordinator.finalize(uuid4(), submission.workspace_id, submission.payload_hash, submission.snapshot)

    async def test_mark_failed_leaves_succeeded_run(self, memory_store):
        coordinator = IngestionCoordinator(memory_store)
        result = await coordinator.ingest(request_for())

        status = await coordinator.mark_failed(result.scan_run_id, FailureDetails(code="X", message="late failure"))

        assert status == "succeeded"
        assert memory_store.runs[result.scan_run_id].status == "succeeded"
        assert memory_store.runs[result.scan_run_id].error_code is None

    async def test_deduplicated_run_without_linkage_is_integrity_error(self, memory_store):
        coordinator = IngestionCoordinator(memory_store)
        seed_run(memory_store, coordinator, request_for(), status="succeeded")

        with pytest.raises(DataIntegrityError) as exc_info:
            await coordinator.ingest(request_for())

        assert exc_info.value.message == "scanRuns record is inconsistent: succeeded run has no graph version linkage."


class TestInsertRace:
    """Test losing the idempotency-key insert race"""

    async def test_lost_insert_race_reevaluates_against_winner(self, stale_read_store):
        coordinator = IngestionCoordinator(stale_read_store)
        winner = seed_run(stale_read_store, coordinator, request_for())

        result = await coordinator.ingest(request_for())

        assert result.status == "processing"
        assert result.scan_run_id == winner.id
        assert len(stale_read_store.runs) == 1

    async def test_lost_insert_race_with_different_payload_conflicts(self, stale_read_store):
        coordinator = IngestionCoordinator(stale_read_store)
        seed_run(stale_read_store, coordinator, request_for(snapshot=make_snapshot(("winner",))))

        with pytest.raises(IdempotencyConflictError):
            await coordinator.ingest(request_for())


class TestLatestRun:
    """Test the latest-successful-run query"""

    async def test_no_runs(self, memory_store):
        assert await IngestionCoordinator(memory_store).get_latest_successful_run("team/repo") is None

    async def test_latest_is_most_recent_success(self, memory_store):
        coordinator = IngestionCoordinator(memory_store)
        await coordinator.ingest(request_for(idempotency_key="K1"))
        second = await coordinator.ingest(request_for(idempotency_key="K2"))
        memory_store.fail_next_version_insert = RuntimeError("boom")
        with pytest.raises(IngestionFailedError):
            await coordinator.ingest(request_for(idempotency_key="K3"))

        latest = await coordinator.get_latest_successful_run("team/repo")

        assert latest.scan_run_id == second.scan_run_id
        assert latest.graph_version_number == 2
        assert latest.scanner_name == "workspace-scanner"
        assert latest.source == "pipeline"

    async def test_latest_without_linkage_is_integrity_error(self, memory_store):
        coordinator = IngestionCoordinator(memory_store)
        seed_run(memory_store, coordinator, request_for(), status="succeeded", completed_at=utcnow())

        with pytest.raises(DataIntegrityError):
            await coordinator.get_latest_successful_run("team/repo")
