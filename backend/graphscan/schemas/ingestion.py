from pydantic import UUID4, Field
from typing import Literal, Optional
from datetime import datetime

from graphscan.core.constants import IngestionSource
from graphscan.schemas.snapshot import ScanSnapshot, SnapshotModel


class ScannerInfo(SnapshotModel):
    name: str
    version: Optional[str] = None


class IngestionMetadata(SnapshotModel):
    branch: Optional[str] = None
    commit_sha: Optional[str] = None
    run_id: Optional[str] = None


class IngestionRequest(SnapshotModel):
    idempotency_key: str
    workspace_id: str
    source: IngestionSource = IngestionSource.MANUAL
    scanner: ScannerInfo
    metadata: Optional[IngestionMetadata] = None
    snapshot: ScanSnapshot


class IngestionResult(SnapshotModel):
    status: Literal["processing", "succeeded"]
    deduplicated: bool
    scan_run_id: UUID4
    graph_version_id: Optional[UUID4] = None
    graph_version_number: Optional[int] = None
    attempt_count: int = Field(ge=1)


class LatestScanRun(SnapshotModel):
    scan_run_id: UUID4
    workspace_id: str
    graph_version_id: UUID4
    graph_version_number: int
    payload_hash: str
    scanner_name: str
    scanner_version: Optional[str]
    source: IngestionSource
    attempt_count: int
    project_count: int
    library_count: int
    component_count: int
    dependency_count: int
    started_at: datetime
    completed_at: Optional[datetime]


class ErrorResponse(SnapshotModel):
    error_code: str
    message: str
