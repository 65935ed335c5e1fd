from sqlalchemy import Column, String, Integer, DateTime, JSON, CheckConstraint, Index, Uuid
import uuid

from graphscan.db.base import BaseModel


class ScanRun(BaseModel):
    """
    One logical snapshot submission, keyed by its idempotency key.

    Status must be one of: processing, succeeded, failed.
    Source must be one of: manual, pipeline, scheduled.
    graph_version_id and graph_version_number are set together when the run
    succeeds and cleared when a failed run is retried.
    """
    __tablename__ = "scan_runs"
    __table_args__ = (
        CheckConstraint(
            "status IN ('processing', 'succeeded', 'failed')",
            name="scan_runs_status_check",
        ),
        CheckConstraint(
            "source IN ('manual', 'pipeline', 'scheduled')",
            name="scan_runs_source_check",
        ),
        CheckConstraint("attempt_count >= 1", name="scan_runs_attempt_count_check"),
        Index("ix_scan_runs_workspace_status_started_at", "workspace_id", "status", "started_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    idempotency_key = Column(String(128), nullable=False, unique=True, index=True)
    payload_hash = Column(String(16), nullable=False)
    workspace_id = Column(String(128), nullable=False, index=True)
    scanner_name = Column(String(128), nullable=False)
    scanner_version = Column(String(64), nullable=True)
    source = Column(String(20), nullable=False, default="manual")
    status = Column(String(20), nullable=False, default="processing")
    attempt_count = Column(Integer, nullable=False, default=1)

    # Snapshot summary
    project_count = Column(Integer, nullable=False, default=0)
    library_count = Column(Integer, nullable=False, default=0)
    component_count = Column(Integer, nullable=False, default=0)
    dependency_count = Column(Integer, nullable=False, default=0)

    # branch / commitSha / runId
    run_metadata = Column("metadata", JSON, nullable=True)

    # Version linkage
    graph_version_id = Column(Uuid, nullable=True)
    graph_version_number = Column(Integer, nullable=True)

    # Failure details
    error_code = Column(String(64), nullable=True)
    error_message = Column(String(512), nullable=True)

    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
