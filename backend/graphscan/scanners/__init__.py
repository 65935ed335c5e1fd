from graphscan.scanners.snapshot import canonicalize_snapshot, render_snapshot, write_snapshot
from graphscan.scanners.workspace_scanner import WorkspaceScanner, scan_workspace

__all__ = [
    "WorkspaceScanner",
    "scan_workspace",
    "canonicalize_snapshot",
    "render_snapshot",
    "write_snapshot",
]
