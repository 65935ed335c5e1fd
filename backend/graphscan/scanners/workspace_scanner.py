# backend/graphscan/scanners/workspace_scanner.py
"""
Workspace dependency-graph scanner.

Resolves projects and alias rules, walks every project's source tree and
assembles a deterministic snapshot of projects, libraries, components and
cross-project dependency edges.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

from graphscan.core.logging import logger
from graphscan.schemas.snapshot import ScanComponent, ScanSnapshot
from graphscan.scanners.aliases import AliasRule, build_alias_rules, sort_by_root_length
from graphscan.scanners.imports import (
    extract_component_metadata,
    extract_import_specifiers,
    list_source_files,
)
from graphscan.scanners.paths import to_relative_path
from graphscan.scanners.resolver import resolve_project_dependencies
from graphscan.scanners.snapshot import EdgeKey, assemble_snapshot
from graphscan.scanners.workspace import ProjectDefinition, load_projects, load_workspace


@dataclass
class ProjectScanResult:
    components: List[ScanComponent] = field(default_factory=list)
    edges: Dict[EdgeKey, Set[str]] = field(default_factory=dict)


class WorkspaceScanner:
    """Static workspace analyzer producing graph snapshots"""

    name = "workspace-scanner"
    version = "1.0.0"

    def __init__(self, max_workers: Optional[int] = None):
        self.max_workers = max_workers

    def scan(self, workspace_root: str) -> ScanSnapshot:
        """Scan ``workspace_root`` and return its canonical snapshot"""
        root = os.path.abspath(workspace_root)
        logger.info(f"Starting workspace scan of {root}")

        # Step 1: Workspace registry and project definitions
        workspace = load_workspace(root)
        projects = load_projects(root, workspace)
        projects_by_root_length = sort_by_root_length(projects)

        # Step 2: Alias rules need the complete project set before any file is resolved
        alias_rules = build_alias_rules(root, projects_by_root_length)
        logger.info(f"Resolved {len(projects)} projects and {len(alias_rules)} alias rules")

        # Step 3: Per-project extraction, merged back in project-name order
        def scan_one(project: ProjectDefinition) -> ProjectScanResult:
            return self._scan_project(root, project, alias_rules, projects_by_root_length)

        if self.max_workers and self.max_workers > 1 and len(projects) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                results = list(executor.map(scan_one, projects))
        else:
            results = [scan_one(project) for project in projects]

        components: List[ScanComponent] = []
        edges: Dict[EdgeKey, Set[str]] = {}
        for result in results:
            components.extend(result.components)
            for key, files in result.edges.items():
                edges.setdefault(key, set()).update(files)

        # Step 4: Canonical snapshot
        snapshot = assemble_snapshot(workspace.config_file_path, projects, components, edges)
        logger.info(
            f"Workspace scan completed: {len(snapshot.components)} components, "
            f"{len(snapshot.dependencies)} dependency edges"
        )
        return snapshot

    def _scan_project(
        self,
        workspace_root: str,
        project: ProjectDefinition,
        alias_rules: Sequence[AliasRule],
        projects_by_root_length: Sequence[ProjectDefinition],
    ) -> ProjectScanResult:
        result = ProjectScanResult()

        if not os.path.isdir(project.absolute_scan_root_path):
            logger.debug(f"Scan root for project {project.name} does not exist, skipping")
            return result

        for absolute_file_path in list_source_files(project.absolute_scan_root_path):
            relative_file_path = to_relative_path(workspace_root, absolute_file_path)

            # Whole-file read: extraction never sees partial content
            with open(absolute_file_path, "r", encoding="utf-8", errors="replace") as handle:
                content = handle.read()

            file_dependencies = resolve_project_dependencies(
                project.name,
                extract_import_specifiers(content),
                absolute_file_path,
                alias_rules,
                projects_by_root_length,
            )
            for target in file_dependencies:
                result.edges.setdefault((project.name, target), set()).add(relative_file_path)

            metadata = extract_component_metadata(content, relative_file_path)
            if metadata is None:
                continue

            result.components.append(
                ScanComponent(
                    name=metadata.name,
                    class_name=metadata.class_name,
                    selector=metadata.selector,
                    standalone=metadata.standalone,
                    project=project.name,
                    file_path=relative_file_path,
                    dependencies=sorted(file_dependencies),
                )
            )

        return result


def scan_workspace(workspace_root: str, max_workers: Optional[int] = None) -> ScanSnapshot:
    return WorkspaceScanner(max_workers=max_workers).scan(workspace_root)
