from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import List, Literal, Optional

from graphscan.core.constants import ProjectType


class SnapshotModel(BaseModel):
    """Wire models use camelCase keys and snake_case attributes"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScanProject(SnapshotModel):
    name: str
    type: ProjectType
    root_path: str
    source_root_path: Optional[str]
    config_file_path: str
    dependencies: List[str]


class ScanLibrary(SnapshotModel):
    name: str
    root_path: str
    source_root_path: Optional[str]
    config_file_path: str


class ScanComponent(SnapshotModel):
    name: str
    class_name: Optional[str]
    selector: Optional[str]
    standalone: Optional[bool]
    project: str
    file_path: str
    dependencies: List[str]


class ScanDependency(SnapshotModel):
    source_project: str
    target_project: str
    via_files: List[str]


class ScanSnapshot(SnapshotModel):
    schema_version: Literal[1]
    workspace_config_path: str
    projects: List[ScanProject]
    libs: List[ScanLibrary]
    components: List[ScanComponent]
    dependencies: List[ScanDependency]

    def to_wire(self) -> dict:
        """JSON-ready dict with camelCase keys, as written by the CLI and hashed by ingestion"""
        return self.model_dump(mode="json", by_alias=True)
