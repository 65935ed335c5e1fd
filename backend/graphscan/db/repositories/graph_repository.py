# backend/graphscan/db/repositories/graph_repository.py
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from graphscan.db.models.graph import (
    GraphComponent,
    GraphDependency,
    GraphHead,
    GraphProject,
    GraphVersion,
)
from graphscan.db.repositories.base import BaseRepository
from graphscan.schemas.snapshot import ScanSnapshot


class GraphVersionRepository(BaseRepository[GraphVersion]):
    """Append-only access to graph versions and their child rows"""

    def __init__(self, session: AsyncSession):
        super().__init__(GraphVersion, session)

    async def create_with_children(self, obj_in: dict, snapshot: ScanSnapshot) -> GraphVersion:
        """Insert a version plus its project/component/dependency rows"""
        version = await self.create(obj_in)

        self.session.add_all(
            GraphProject(
                version_id=version.id,
                name=project.name,
                type=project.type.value,
                root_path=project.root_path,
                source_root_path=project.source_root_path,
                config_file_path=project.config_file_path,
                dependencies=list(project.dependencies),
            )
            for project in snapshot.projects
        )
        self.session.add_all(
            GraphComponent(
                version_id=version.id,
                name=component.name,
                class_name=component.class_name,
                selector=component.selector,
                standalone=component.standalone,
                project=component.project,
                file_path=component.file_path,
                dependencies=list(component.dependencies),
            )
            for component in snapshot.components
        )
        self.session.add_all(
            GraphDependency(
                version_id=version.id,
                source_project=dependency.source_project,
                target_project=dependency.target_project,
                via_files=list(dependency.via_files),
            )
            for dependency in snapshot.dependencies
        )
        await self.session.flush()
        return version

    async def list_versions(self, workspace_id: str) -> List[int]:
        """Committed version numbers for a workspace, ascending"""
        result = await self.session.execute(
            select(GraphVersion.version)
            .where(GraphVersion.workspace_id == workspace_id)
            .order_by(GraphVersion.version)
        )
        return list(result.scalars().all())


class GraphHeadRepository(BaseRepository[GraphHead]):
    """Per-workspace head pointer"""

    def __init__(self, session: AsyncSession):
        super().__init__(GraphHead, session)

    async def get_by_workspace(self, workspace_id: str, for_update: bool = False) -> Optional[GraphHead]:
        query = select(GraphHead).where(GraphHead.workspace_id == workspace_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def upsert(self, workspace_id: str, latest_version: int) -> GraphHead:
        head = await self.get_by_workspace(workspace_id)
        if head is None:
            return await self.create({"workspace_id": workspace_id, "latest_version": latest_version})
        return await self.update(head.id, {"latest_version": latest_version})
