# backend/graphscan/db/models/__init__.py
from graphscan.db.models.scan_run import ScanRun
from graphscan.db.models.graph import GraphVersion, GraphHead, GraphProject, GraphComponent, GraphDependency

__all__ = ["ScanRun", "GraphVersion", "GraphHead", "GraphProject", "GraphComponent", "GraphDependency"]
