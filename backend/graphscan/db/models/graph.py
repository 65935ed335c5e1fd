# backend/graphscan/db/models/graph.py
"""Versioned dependency-graph models. GraphVersion and its child rows are write-once."""

from sqlalchemy import Column, String, Text, Integer, Boolean, DateTime, JSON, ForeignKey, UniqueConstraint, CheckConstraint, Uuid
from sqlalchemy.orm import relationship
import uuid

from graphscan.db.base import Base, utcnow


class GraphVersion(Base):
    """One immutable, numbered commit of a workspace's graph"""
    __tablename__ = "graph_versions"
    __table_args__ = (
        UniqueConstraint("workspace_id", "version", name="uq_graph_versions_workspace_version"),
        CheckConstraint("version >= 1", name="graph_versions_version_check"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id = Column(String(128), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    scan_run_id = Column(Uuid, ForeignKey("scan_runs.id"), nullable=False, index=True)
    payload_hash = Column(String(16), nullable=False)
    schema_version = Column(Integer, nullable=False)
    workspace_config_path = Column(Text, nullable=False)
    project_count = Column(Integer, nullable=False)
    library_count = Column(Integer, nullable=False)
    component_count = Column(Integer, nullable=False)
    dependency_count = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    projects = relationship("GraphProject", back_populates="graph_version", order_by="GraphProject.name")
    components = relationship("GraphComponent", back_populates="graph_version")
    dependencies = relationship("GraphDependency", back_populates="graph_version")


class GraphHead(Base):
    """Latest committed version number per workspace"""
    __tablename__ = "graph_heads"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id = Column(String(128), nullable=False, unique=True, index=True)
    latest_version = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class GraphProject(Base):
    __tablename__ = "graph_projects"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    version_id = Column(Uuid, ForeignKey("graph_versions.id"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    type = Column(String(20), nullable=False)
    root_path = Column(Text, nullable=False)
    source_root_path = Column(Text, nullable=True)
    config_file_path = Column(Text, nullable=False)
    dependencies = Column(JSON, nullable=False, default=list)

    graph_version = relationship("GraphVersion", back_populates="projects")


class GraphComponent(Base):
    __tablename__ = "graph_components"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    version_id = Column(Uuid, ForeignKey("graph_versions.id"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    class_name = Column(Text, nullable=True)
    selector = Column(Text, nullable=True)
    standalone = Column(Boolean, nullable=True)
    project = Column(Text, nullable=False)
    file_path = Column(Text, nullable=False)
    dependencies = Column(JSON, nullable=False, default=list)

    graph_version = relationship("GraphVersion", back_populates="components")


class GraphDependency(Base):
    __tablename__ = "graph_dependencies"
    __table_args__ = (
        CheckConstraint("source_project <> target_project", name="graph_dependencies_no_self_edge"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    version_id = Column(Uuid, ForeignKey("graph_versions.id"), nullable=False, index=True)
    source_project = Column(Text, nullable=False)
    target_project = Column(Text, nullable=False)
    via_files = Column(JSON, nullable=False, default=list)

    graph_version = relationship("GraphVersion", back_populates="dependencies")
