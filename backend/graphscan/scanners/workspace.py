# backend/graphscan/scanners/workspace.py
"""
Workspace registry loading and project resolution.

Reads the workspace config (``angular.json`` / ``workspace.json``) and expands
each registry entry, inline or a reference to a ``project.json``, into a
concrete project definition with normalized workspace-relative paths.
"""

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from graphscan.core.constants import (
    LIBRARY_ROOT_PREFIX,
    PROJECT_CONFIG_FILENAME,
    WORKSPACE_CONFIG_CANDIDATES,
    ProjectType,
    ScannerErrorCode,
)
from graphscan.core.exceptions import ScannerError
from graphscan.scanners.paths import (
    is_within,
    normalize_absolute_path,
    normalize_workspace_path,
    resolve_path,
)


@dataclass
class LoadedWorkspace:
    config_file_path: str
    projects: Dict[str, Union[Dict[str, Any], str]]


@dataclass
class ProjectDefinition:
    name: str
    type: ProjectType
    root_path: str
    source_root_path: Optional[str]
    config_file_path: str
    absolute_root_path: str
    absolute_scan_root_path: str


def parse_json_file(file_path: str, parse_error_code: ScannerErrorCode) -> Any:
    """Read and parse a JSON file, mapping syntax errors to ``parse_error_code``"""
    with open(file_path, "r", encoding="utf-8", errors="replace") as handle:
        content = handle.read()

    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        normalized_file_path = normalize_workspace_path(file_path)
        raise ScannerError(
            parse_error_code,
            f'Failed to parse JSON file "{normalized_file_path}": {e}',
            {"filePath": normalized_file_path},
        ) from e


def load_workspace(workspace_root: str) -> LoadedWorkspace:
    """Locate the workspace config; the first existing candidate wins"""
    for candidate in WORKSPACE_CONFIG_CANDIDATES:
        candidate_path = os.path.join(workspace_root, candidate)
        if not os.path.isfile(candidate_path):
            continue

        parsed = parse_json_file(candidate_path, ScannerErrorCode.WORKSPACE_PARSE_ERROR)

        if not isinstance(parsed, dict):
            raise ScannerError(
                ScannerErrorCode.WORKSPACE_PROJECTS_INVALID,
                f'Workspace config "{candidate}" is not a JSON object.',
                {"workspaceConfigPath": candidate},
            )

        if not isinstance(parsed.get("projects"), dict):
            raise ScannerError(
                ScannerErrorCode.WORKSPACE_PROJECTS_INVALID,
                f'Workspace config "{candidate}" is missing a "projects" object.',
                {"workspaceConfigPath": candidate},
            )

        return LoadedWorkspace(config_file_path=candidate, projects=parsed["projects"])

    raise ScannerError(
        ScannerErrorCode.WORKSPACE_NOT_FOUND,
        f'Could not find a workspace config in "{workspace_root}".',
        {"checkedFiles": ", ".join(WORKSPACE_CONFIG_CANDIDATES)},
    )


def load_projects(workspace_root: str, workspace: LoadedWorkspace) -> List[ProjectDefinition]:
    """Resolve every registry entry, in lexical project-name order"""
    return [
        load_project_definition(
            workspace_root,
            workspace.config_file_path,
            name,
            workspace.projects[name],
        )
        for name in sorted(workspace.projects)
    ]


def load_project_definition(
    workspace_root: str,
    workspace_config_path: str,
    project_name: str,
    raw_definition: Any,
) -> ProjectDefinition:
    config_file_path = workspace_config_path
    default_root_path: Optional[str] = None

    if isinstance(raw_definition, str):
        reference = raw_definition if raw_definition.endswith(".json") else f"{raw_definition}/{PROJECT_CONFIG_FILENAME}"
        project_config_path = normalize_workspace_path(reference)
        absolute_config_path = resolve_path(workspace_root, project_config_path)

        if not os.path.isfile(absolute_config_path):
            raise ScannerError(
                ScannerErrorCode.PROJECT_CONFIG_NOT_FOUND,
                f'Project "{project_name}" references missing config file "{project_config_path}".',
                {"project": project_name, "configFilePath": project_config_path},
            )

        definition = parse_json_file(absolute_config_path, ScannerErrorCode.PROJECT_CONFIG_PARSE_ERROR)

        if not isinstance(definition, dict):
            raise ScannerError(
                ScannerErrorCode.PROJECT_CONFIG_INVALID,
                f'Project "{project_name}" config file "{project_config_path}" is not a JSON object.',
                {"project": project_name, "configFilePath": project_config_path},
            )

        config_file_path = normalize_workspace_path(os.path.relpath(absolute_config_path, workspace_root))

        suffix = f"/{PROJECT_CONFIG_FILENAME}"
        if project_config_path.endswith(suffix):
            default_root_path = project_config_path[: -len(suffix)]
    elif isinstance(raw_definition, dict):
        definition = raw_definition
    else:
        raise ScannerError(
            ScannerErrorCode.WORKSPACE_PROJECTS_INVALID,
            f'Project "{project_name}" has an unsupported configuration shape.',
            {"project": project_name},
        )

    root = definition.get("root")
    root_path = normalize_workspace_path(root) if isinstance(root, str) else default_root_path

    if not root_path:
        raise ScannerError(
            ScannerErrorCode.PROJECT_CONFIG_INVALID,
            f'Project "{project_name}" is missing a "root" path.',
            {"project": project_name, "configFilePath": config_file_path},
        )

    source_root = definition.get("sourceRoot")
    source_root_path = (
        normalize_workspace_path(source_root)
        if isinstance(source_root, str) and source_root.strip()
        else None
    )

    absolute_root_path = resolve_path(workspace_root, root_path)
    absolute_scan_root_path = resolve_path(workspace_root, source_root_path or root_path)

    assert_inside_workspace(workspace_root, absolute_root_path, project_name)
    assert_inside_workspace(workspace_root, absolute_scan_root_path, project_name)

    return ProjectDefinition(
        name=project_name,
        type=infer_project_type(definition.get("projectType"), root_path),
        root_path=root_path,
        source_root_path=source_root_path,
        config_file_path=config_file_path,
        absolute_root_path=absolute_root_path,
        absolute_scan_root_path=absolute_scan_root_path,
    )


def infer_project_type(project_type: Any, root_path: str) -> ProjectType:
    if project_type in (ProjectType.APPLICATION.value, ProjectType.LIBRARY.value):
        return ProjectType(project_type)

    if root_path == LIBRARY_ROOT_PREFIX or root_path.startswith(f"{LIBRARY_ROOT_PREFIX}/"):
        return ProjectType.LIBRARY

    return ProjectType.APPLICATION


def assert_inside_workspace(workspace_root: str, absolute_target_path: str, project_name: str) -> None:
    if not is_within(absolute_target_path, normalize_absolute_path(workspace_root)):
        raise ScannerError(
            ScannerErrorCode.INVALID_PATH,
            f'Project "{project_name}" resolved path outside workspace root.',
            {"project": project_name, "targetPath": absolute_target_path},
        )
