# backend/graphscan/services/ingestion.py
"""
Idempotent ingestion rules.

Pure functions: the acquire decision for an idempotency key, input
normalization and failure-detail normalization. Persistence lives in
``graphscan.services.ingestion_coordinator``.
"""

import re
from dataclasses import dataclass
from typing import ClassVar, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from graphscan.core.config import settings
from graphscan.core.constants import (
    DEFAULT_FAILURE_CODE,
    DEFAULT_FAILURE_MESSAGE,
    MAX_FAILURE_CODE_LENGTH,
    MAX_FAILURE_MESSAGE_LENGTH,
    ScanRunStatus,
)
from graphscan.core.exceptions import IngestionValidationError
from graphscan.schemas.ingestion import IngestionMetadata
from graphscan.schemas.snapshot import ScanSnapshot

CONFLICT_REASON = "Idempotency key reuse detected with a different scanner snapshot payload."


# Acquire decisions. Callers must handle each variant explicitly.

@dataclass(frozen=True)
class AcquireNew:
    type: ClassVar[str] = "acquire_new"


@dataclass(frozen=True)
class AcquireRetry:
    type: ClassVar[str] = "acquire_retry"


@dataclass(frozen=True)
class DeduplicatedSuccess:
    type: ClassVar[str] = "deduplicated_success"


@dataclass(frozen=True)
class InProgress:
    type: ClassVar[str] = "in_progress"


@dataclass(frozen=True)
class Conflict:
    type: ClassVar[str] = "conflict"
    reason: str = CONFLICT_REASON


IngestionDecision = Union[AcquireNew, AcquireRetry, DeduplicatedSuccess, InProgress, Conflict]


@dataclass(frozen=True)
class ExistingRunIdentity:
    status: ScanRunStatus
    payload_hash: str


@dataclass(frozen=True)
class SnapshotSummary:
    project_count: int
    library_count: int
    component_count: int
    dependency_count: int


@dataclass(frozen=True)
class FailureDetails:
    code: str
    message: str


def decide_ingestion_attempt(existing: Optional[ExistingRunIdentity], payload_hash: str) -> IngestionDecision:
    """
    Decide what a submission under an idempotency key may do.

    | existing   | hash match | decision            |
    |------------|------------|---------------------|
    | none       | -          | AcquireNew          |
    | any        | no         | Conflict            |
    | succeeded  | yes        | DeduplicatedSuccess |
    | processing | yes        | InProgress          |
    | failed     | yes        | AcquireRetry        |
    """
    if existing is None:
        return AcquireNew()

    if existing.payload_hash != payload_hash:
        return Conflict()

    status = ScanRunStatus(existing.status)
    if status == ScanRunStatus.SUCCEEDED:
        return DeduplicatedSuccess()
    if status == ScanRunStatus.PROCESSING:
        return InProgress()
    return AcquireRetry()


def summarize_snapshot(snapshot: ScanSnapshot) -> SnapshotSummary:
    return SnapshotSummary(
        project_count=len(snapshot.projects),
        library_count=len(snapshot.libs),
        component_count=len(snapshot.components),
        dependency_count=len(snapshot.dependencies),
    )


def _normalize_required(value: str, field_name: str, max_length: int) -> str:
    normalized = value.strip()
    if not normalized:
        raise IngestionValidationError(f"{field_name} is required.")
    if len(normalized) > max_length:
        raise IngestionValidationError(f"{field_name} must be {max_length} characters or fewer.")
    return normalized


def normalize_idempotency_key(value: str) -> str:
    return _normalize_required(value, "idempotencyKey", settings.MAX_IDEMPOTENCY_KEY_LENGTH)


def normalize_workspace_id(value: str) -> str:
    return _normalize_required(value, "workspaceId", settings.MAX_WORKSPACE_ID_LENGTH)


def normalize_scanner_name(value: str) -> str:
    return _normalize_required(value, "scanner.name", settings.MAX_SCANNER_NAME_LENGTH)


def trim_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


def normalize_scanner_version(value: Optional[str]) -> Optional[str]:
    normalized = trim_optional(value)
    if normalized is not None and len(normalized) > settings.MAX_SCANNER_VERSION_LENGTH:
        raise IngestionValidationError(
            f"scanner.version must be {settings.MAX_SCANNER_VERSION_LENGTH} characters or fewer."
        )
    return normalized


def sanitize_metadata(metadata: Optional[IngestionMetadata]) -> Optional[IngestionMetadata]:
    """Trim fields, drop blank ones; empty metadata becomes None"""
    if metadata is None:
        return None

    sanitized = IngestionMetadata(
        branch=trim_optional(metadata.branch),
        commit_sha=trim_optional(metadata.commit_sha),
        run_id=trim_optional(metadata.run_id),
    )
    if not sanitized.model_dump(exclude_none=True):
        return None
    return sanitized


def normalize_failure_code(value: str) -> str:
    normalized = re.sub(r"[^A-Z0-9_]+", "_", value.strip().upper()).strip("_")
    if not normalized:
        return DEFAULT_FAILURE_CODE
    return normalized[:MAX_FAILURE_CODE_LENGTH]


def normalize_failure_message(value: str) -> str:
    normalized = re.sub(r"\s+", " ", value).strip()
    if not normalized:
        return DEFAULT_FAILURE_MESSAGE
    if len(normalized) > MAX_FAILURE_MESSAGE_LENGTH:
        return normalized[: MAX_FAILURE_MESSAGE_LENGTH - 3] + "..."
    return normalized


def describe_database_error(error: SQLAlchemyError) -> str:
    """Driver message without the SQL statement or bound parameters"""
    original = getattr(error, "orig", None)
    if original is not None:
        return f"{type(error).__name__}: {original}"
    return f"{type(error).__name__}: database operation failed."


def build_failure_details(error: object) -> FailureDetails:
    """Code and message persisted on a failed run"""
    if isinstance(error, str):
        return FailureDetails(code=DEFAULT_FAILURE_CODE, message=normalize_failure_message(error))

    # SQLAlchemy's .code is a documentation link id, not a failure code
    if isinstance(error, SQLAlchemyError):
        return FailureDetails(
            code=DEFAULT_FAILURE_CODE,
            message=normalize_failure_message(describe_database_error(error)),
        )

    if isinstance(error, Exception):
        code = getattr(error, "code", None)
        if hasattr(code, "value"):
            code = code.value
        return FailureDetails(
            code=normalize_failure_code(code) if isinstance(code, str) else DEFAULT_FAILURE_CODE,
            message=normalize_failure_message(str(error)),
        )

    return FailureDetails(code=DEFAULT_FAILURE_CODE, message=DEFAULT_FAILURE_MESSAGE)
