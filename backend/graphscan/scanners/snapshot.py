# backend/graphscan/scanners/snapshot.py
"""
Snapshot assembly and canonical ordering.

Ordering is part of the contract: ingestion deduplicates by content digest,
so two scans of an unchanged tree must serialize byte-for-byte identically.
"""

import json
import os
from typing import Dict, Iterable, List, Mapping, Set, Tuple

from graphscan.core.constants import SNAPSHOT_SCHEMA_VERSION, ProjectType
from graphscan.schemas.snapshot import (
    ScanComponent,
    ScanDependency,
    ScanLibrary,
    ScanProject,
    ScanSnapshot,
)
from graphscan.scanners.workspace import ProjectDefinition

EdgeKey = Tuple[str, str]


def sorted_unique(values: Iterable[str]) -> List[str]:
    return sorted(set(values))


def format_dependencies(edges: Mapping[EdgeKey, Iterable[str]]) -> List[ScanDependency]:
    return [
        ScanDependency(
            source_project=source,
            target_project=target,
            via_files=sorted_unique(via_files),
        )
        for (source, target), via_files in sorted(edges.items())
        if source != target
    ]


def assemble_snapshot(
    workspace_config_path: str,
    projects: Iterable[ProjectDefinition],
    components: Iterable[ScanComponent],
    edges: Mapping[EdgeKey, Iterable[str]],
) -> ScanSnapshot:
    dependencies = format_dependencies(edges)

    targets_by_project: Dict[str, Set[str]] = {}
    for edge in dependencies:
        targets_by_project.setdefault(edge.source_project, set()).add(edge.target_project)

    scan_projects = [
        ScanProject(
            name=project.name,
            type=project.type,
            root_path=project.root_path,
            source_root_path=project.source_root_path,
            config_file_path=project.config_file_path,
            dependencies=sorted_unique(targets_by_project.get(project.name, ())),
        )
        for project in sorted(projects, key=lambda project: project.name)
    ]

    libs = [
        ScanLibrary(
            name=project.name,
            root_path=project.root_path,
            source_root_path=project.source_root_path,
            config_file_path=project.config_file_path,
        )
        for project in scan_projects
        if project.type == ProjectType.LIBRARY
    ]

    return ScanSnapshot(
        schema_version=SNAPSHOT_SCHEMA_VERSION,
        workspace_config_path=workspace_config_path,
        projects=scan_projects,
        libs=libs,
        components=sort_components(components),
        dependencies=dependencies,
    )


def sort_components(components: Iterable[ScanComponent]) -> List[ScanComponent]:
    normalized = [
        component.model_copy(update={
            "dependencies": sorted_unique(target for target in component.dependencies if target != component.project),
        })
        for component in components
    ]
    return sorted(normalized, key=lambda component: (component.project, component.file_path, component.name))


def canonicalize_snapshot(snapshot: ScanSnapshot) -> ScanSnapshot:
    """Re-apply canonical ordering to a snapshot from any source; self-references are dropped"""
    edges: Dict[EdgeKey, Set[str]] = {}
    for edge in snapshot.dependencies:
        edges.setdefault((edge.source_project, edge.target_project), set()).update(edge.via_files)

    return ScanSnapshot(
        schema_version=snapshot.schema_version,
        workspace_config_path=snapshot.workspace_config_path,
        projects=[
            project.model_copy(update={
                "dependencies": sorted_unique(target for target in project.dependencies if target != project.name),
            })
            for project in sorted(snapshot.projects, key=lambda project: project.name)
        ],
        libs=sorted(snapshot.libs, key=lambda library: library.name),
        components=sort_components(snapshot.components),
        dependencies=format_dependencies(edges),
    )


def render_snapshot(snapshot: ScanSnapshot) -> str:
    """Pretty-printed JSON with a trailing newline"""
    return json.dumps(snapshot.to_wire(), indent=2, ensure_ascii=False) + "\n"


def write_snapshot(output_path: str, snapshot: ScanSnapshot) -> str:
    absolute_output_path = os.path.abspath(output_path)
    os.makedirs(os.path.dirname(absolute_output_path), exist_ok=True)
    with open(absolute_output_path, "w", encoding="utf-8") as handle:
        handle.write(render_snapshot(snapshot))
    return absolute_output_path
