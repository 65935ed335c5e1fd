# backend/graphscan/core/exceptions.py
"""
Typed errors raised by the scanner and the ingestion pipeline.

Every ingestion error carries a stable machine ``code`` and the HTTP
``status_code`` the API boundary renders it with.
"""

from typing import Dict, Optional

from graphscan.core.constants import ScannerErrorCode


class ScannerError(Exception):
    """Structural problem with a workspace (missing/unparsable config, bad paths)"""

    def __init__(
        self,
        code: ScannerErrorCode,
        message: str,
        details: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}


class IngestionError(Exception):
    """Base class for errors surfaced by the ingestion endpoint"""

    code: str = "INGESTION_REQUEST_FAILED"
    status_code: int = 500

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class IngestionValidationError(IngestionError):
    code = "INVALID_REQUEST"
    status_code = 400


class IdempotencyConflictError(IngestionError):
    code = "IDEMPOTENCY_KEY_CONFLICT"
    status_code = 409


class PayloadMismatchError(IngestionError):
    code = "PAYLOAD_HASH_MISMATCH"
    status_code = 409


class DataIntegrityError(IngestionError):
    code = "DATA_INTEGRITY_ERROR"
    status_code = 500


class ScanRunNotFoundError(IngestionError):
    code = "SCAN_RUN_NOT_FOUND"
    status_code = 500


class InvalidRunStateError(IngestionError):
    code = "INVALID_RUN_STATE"
    status_code = 500


class IngestionFailedError(IngestionError):
    """Finalize failed and the run was marked failed; the key stays retryable"""

    code = "INGESTION_FAILED"
    status_code = 500


class DuplicateIdempotencyKeyError(Exception):
    """Raised by a store when a concurrent insert already claimed the key"""

    def __init__(self, idempotency_key: str):
        super().__init__(f"Scan run for idempotency key {idempotency_key!r} already exists")
        self.idempotency_key = idempotency_key


class GraphVersionConflictError(Exception):
    """Raised by a store when a concurrent finalize already committed the version number"""

    code = "GRAPH_VERSION_CONFLICT"

    def __init__(self, workspace_id: str, version: int):
        super().__init__(f"Graph version {version} for workspace {workspace_id!r} was committed concurrently")
        self.workspace_id = workspace_id
        self.version = version
