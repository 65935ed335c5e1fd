# backend/graphscan/scanners/imports.py
"""
Structural extraction of import specifiers and component metadata.

This is pattern matching over source text, not a parser: unusual
formatting (decorators split by comments, computed selectors) is missed.
"""

import os
import re
from dataclasses import dataclass
from typing import List, Optional

from graphscan.core.constants import IGNORED_DIRECTORIES, IGNORED_FILE_SUFFIXES, SOURCE_FILE_SUFFIX

IMPORT_PATTERNS = (
    # import x from 'y' / import 'y'
    re.compile(r"\bimport\s+(?:[^'\"`]+\s+from\s+)?['\"`]([^'\"`]+)['\"`]"),
    # export { x } from 'y' / export * from 'y'
    re.compile(r"\bexport\s+[^'\"`]*\s+from\s+['\"`]([^'\"`]+)['\"`]"),
    # import('y')
    re.compile(r"\bimport\s*\(\s*['\"`]([^'\"`]+)['\"`]\s*\)"),
)

COMPONENT_BLOCK_PATTERN = re.compile(r"@Component\s*\(\s*\{(.*?)\}\s*\)", re.DOTALL)
SELECTOR_PATTERN = re.compile(r"selector\s*:\s*['\"`]([^'\"`]+)['\"`]")
STANDALONE_PATTERN = re.compile(r"standalone\s*:\s*(true|false)")
CLASS_NAME_PATTERN = re.compile(r"@Component.*?export\s+class\s+([A-Za-z_][A-Za-z0-9_]*)", re.DOTALL)


@dataclass
class ComponentMetadata:
    name: str
    class_name: Optional[str]
    selector: Optional[str]
    standalone: Optional[bool]


def is_source_file(file_name: str) -> bool:
    if not file_name.endswith(SOURCE_FILE_SUFFIX):
        return False
    return not file_name.endswith(IGNORED_FILE_SUFFIXES)


def list_source_files(root_directory: str) -> List[str]:
    """All source files below ``root_directory``, entries visited in lexical order"""
    files: List[str] = []

    def walk(directory: str) -> None:
        with os.scandir(directory) as iterator:
            entries = sorted(iterator, key=lambda entry: entry.name)

        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                if entry.name not in IGNORED_DIRECTORIES:
                    walk(entry.path)
                continue

            if entry.is_file(follow_symlinks=False) and is_source_file(entry.name):
                files.append(entry.path)

    walk(root_directory)
    return files


def extract_import_specifiers(content: str) -> List[str]:
    specifiers = set()
    for pattern in IMPORT_PATTERNS:
        specifiers.update(match.group(1) for match in pattern.finditer(content))
    return sorted(specifiers)


def derive_component_name(file_path: str) -> str:
    """PascalCase the file base name: ``user-card.component.ts`` -> ``UserCardComponent``"""
    base_name = os.path.basename(file_path)
    if base_name.endswith(SOURCE_FILE_SUFFIX):
        base_name = base_name[: -len(SOURCE_FILE_SUFFIX)]
    segments = [segment for segment in re.split(r"[^A-Za-z0-9]+", base_name) if segment]
    return "".join(segment[0].upper() + segment[1:] for segment in segments)


def extract_component_metadata(content: str, file_path: str) -> Optional[ComponentMetadata]:
    block = COMPONENT_BLOCK_PATTERN.search(content)
    if not block:
        return None

    body = block.group(1)
    selector = SELECTOR_PATTERN.search(body)
    standalone = STANDALONE_PATTERN.search(body)
    class_name_match = CLASS_NAME_PATTERN.search(content)
    class_name = class_name_match.group(1) if class_name_match else None

    return ComponentMetadata(
        name=class_name or derive_component_name(file_path),
        class_name=class_name,
        selector=selector.group(1) if selector else None,
        standalone=(standalone.group(1) == "true") if standalone else None,
    )
