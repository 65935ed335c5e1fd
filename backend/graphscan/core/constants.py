# backend/graphscan/core/constants.py
from enum import Enum
from typing import FrozenSet, Tuple


class ProjectType(str, Enum):
    APPLICATION = "application"
    LIBRARY = "library"


class ScanRunStatus(str, Enum):
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class IngestionSource(str, Enum):
    MANUAL = "manual"
    PIPELINE = "pipeline"
    SCHEDULED = "scheduled"


class ScannerErrorCode(str, Enum):
    WORKSPACE_NOT_FOUND = "WORKSPACE_NOT_FOUND"
    WORKSPACE_PARSE_ERROR = "WORKSPACE_PARSE_ERROR"
    WORKSPACE_PROJECTS_INVALID = "WORKSPACE_PROJECTS_INVALID"
    PROJECT_CONFIG_NOT_FOUND = "PROJECT_CONFIG_NOT_FOUND"
    PROJECT_CONFIG_PARSE_ERROR = "PROJECT_CONFIG_PARSE_ERROR"
    PROJECT_CONFIG_INVALID = "PROJECT_CONFIG_INVALID"
    INVALID_PATH = "INVALID_PATH"


SNAPSHOT_SCHEMA_VERSION = 1

# Workspace layout
WORKSPACE_CONFIG_CANDIDATES: Tuple[str, ...] = ("angular.json", "workspace.json")
PATH_MAPPING_CONFIG_CANDIDATES: Tuple[str, ...] = ("tsconfig.base.json", "tsconfig.json")
PROJECT_CONFIG_FILENAME = "project.json"
LIBRARY_ROOT_PREFIX = "libs"

# Source traversal
SOURCE_FILE_SUFFIX = ".ts"
IGNORED_DIRECTORIES: FrozenSet[str] = frozenset({
    ".git",
    ".hg",
    ".idea",
    ".nx",
    ".vscode",
    "coverage",
    "dist",
    "node_modules",
    "tmp",
})
IGNORED_FILE_SUFFIXES: Tuple[str, ...] = (".d.ts", ".spec.ts", ".stories.ts", ".test.ts")

# Failure normalization
DEFAULT_FAILURE_CODE = "INGESTION_FAILED"
DEFAULT_FAILURE_MESSAGE = "Scanner snapshot ingestion failed."
MAX_FAILURE_CODE_LENGTH = 64
MAX_FAILURE_MESSAGE_LENGTH = 512

# Retry client
TRANSIENT_HTTP_STATUSES: FrozenSet[int] = frozenset({408, 425, 429, 500, 502, 503, 504})
