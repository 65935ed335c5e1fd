# backend/graphscan/scanners/aliases.py
"""
Alias rules: bare-import prefix -> owning project.

Derived from ``compilerOptions.paths`` in the workspace's path-mapping
configs. Rules are ordered most specific first so that the first match
during resolution is the winner.
"""

import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from graphscan.core.constants import PATH_MAPPING_CONFIG_CANDIDATES, ScannerErrorCode
from graphscan.scanners.paths import is_within, normalize_absolute_path, resolve_path
from graphscan.scanners.workspace import ProjectDefinition, parse_json_file


@dataclass(frozen=True)
class AliasRule:
    alias_base: str
    project: str

    def matches(self, specifier: str) -> bool:
        return specifier == self.alias_base or specifier.startswith(f"{self.alias_base}/")


def sort_by_root_length(projects: Sequence[ProjectDefinition]) -> List[ProjectDefinition]:
    """Longest root first, ties by name: the order used for containment lookups"""
    return sorted(projects, key=lambda project: (-len(project.absolute_root_path), project.name))


def find_project_by_path(absolute_path: str, projects_by_root_length: Sequence[ProjectDefinition]) -> Optional[str]:
    """Name of the project whose root is the longest prefix of ``absolute_path``"""
    normalized = normalize_absolute_path(absolute_path)
    for project in projects_by_root_length:
        if is_within(normalized, project.absolute_root_path):
            return project.name
    return None


def load_path_mappings(workspace_root: str) -> Dict[str, Any]:
    """Union of all path mappings; later config files overwrite earlier keys"""
    mappings: Dict[str, Any] = {}

    for candidate in PATH_MAPPING_CONFIG_CANDIDATES:
        config_path = os.path.join(workspace_root, candidate)
        if not os.path.isfile(config_path):
            continue

        config = parse_json_file(config_path, ScannerErrorCode.WORKSPACE_PARSE_ERROR)
        if not isinstance(config, dict):
            continue

        compiler_options = config.get("compilerOptions")
        if not isinstance(compiler_options, dict):
            continue

        paths = compiler_options.get("paths")
        if not isinstance(paths, dict):
            continue

        mappings.update(paths)

    return mappings


def normalize_alias_base(alias: str) -> Optional[str]:
    if not alias.strip():
        return None
    return alias[:-2] if alias.endswith("/*") else alias


def resolve_target_project(
    workspace_root: str,
    target_path: Any,
    projects_by_root_length: Sequence[ProjectDefinition],
) -> Optional[str]:
    if not isinstance(target_path, str):
        return None

    normalized = target_path.replace("\\", "/")
    normalized = re.sub(r"/\*+$", "", normalized)
    normalized = re.sub(r"/$", "", normalized)
    if not normalized:
        return None

    return find_project_by_path(resolve_path(workspace_root, normalized), projects_by_root_length)


def build_alias_rules(
    workspace_root: str,
    projects_by_root_length: Sequence[ProjectDefinition],
) -> List[AliasRule]:
    rules: List[AliasRule] = []

    for alias, targets in load_path_mappings(workspace_root).items():
        if not isinstance(targets, list) or not targets:
            continue

        alias_base = normalize_alias_base(alias)
        if not alias_base:
            continue

        project = next(
            (
                candidate
                for candidate in (
                    resolve_target_project(workspace_root, target, projects_by_root_length)
                    for target in targets
                )
                if candidate is not None
            ),
            None,
        )
        if project is None:
            continue

        rules.append(AliasRule(alias_base=alias_base, project=project))

    ordered = sorted(rules, key=lambda rule: (-len(rule.alias_base), rule.alias_base))

    # Collapse adjacent exact duplicates
    deduplicated: List[AliasRule] = []
    for rule in ordered:
        if deduplicated and deduplicated[-1] == rule:
            continue
        deduplicated.append(rule)

    return deduplicated
