import os
from typing import Iterable, Optional, Sequence, Set

from graphscan.scanners.aliases import AliasRule, find_project_by_path
from graphscan.scanners.paths import resolve_path
from graphscan.scanners.workspace import ProjectDefinition


def resolve_import_project(
    specifier: str,
    file_path: str,
    alias_rules: Sequence[AliasRule],
    projects_by_root_length: Sequence[ProjectDefinition],
) -> Optional[str]:
    """
    Owning project of an import specifier, or None for external packages.

    Relative specifiers resolve against the importing file's directory and
    are attributed by root containment; bare specifiers go through the alias
    rules, most specific first.
    """
    if specifier.startswith("."):
        resolved = resolve_path(os.path.dirname(file_path), specifier)
        return find_project_by_path(resolved, projects_by_root_length)

    for rule in alias_rules:
        if rule.matches(specifier):
            return rule.project

    return None


def resolve_project_dependencies(
    source_project: str,
    specifiers: Iterable[str],
    file_path: str,
    alias_rules: Sequence[AliasRule],
    projects_by_root_length: Sequence[ProjectDefinition],
) -> Set[str]:
    """Target projects reached from one file, excluding the file's own project"""
    dependencies: Set[str] = set()

    for specifier in specifiers:
        target = resolve_import_project(specifier, file_path, alias_rules, projects_by_root_length)
        if target is None or target == source_project:
            continue
        dependencies.add(target)

    return dependencies
