import os
import re


def normalize_workspace_path(raw_path: str) -> str:
    """Forward slashes, no leading ``./``, no trailing slash; empty becomes ``.``"""
    normalized = raw_path.replace("\\", "/")
    normalized = re.sub(r"^\./", "", normalized)
    normalized = re.sub(r"/$", "", normalized)
    return normalized or "."


def normalize_absolute_path(absolute_path: str) -> str:
    return absolute_path.replace("\\", "/").rstrip("/") or "/"


def resolve_path(base: str, *segments: str) -> str:
    """Absolute, normalized path of ``segments`` joined onto ``base`` (no symlink resolution)"""
    return normalize_absolute_path(os.path.normpath(os.path.join(base, *segments)))


def is_within(absolute_path: str, root: str) -> bool:
    return absolute_path == root or absolute_path.startswith(root.rstrip("/") + "/")


def to_relative_path(workspace_root: str, absolute_path: str) -> str:
    return normalize_workspace_path(os.path.relpath(absolute_path, workspace_root))
