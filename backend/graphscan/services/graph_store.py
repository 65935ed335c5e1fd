# backend/graphscan/services/graph_store.py
"""
Storage interface used by the ingestion coordinator.

The coordinator only talks to ``GraphStore``: transactional get/insert/patch
over scan runs, graph versions and graph heads. ``SqlAlchemyGraphStore`` is
the production implementation; any engine that can honour a unique key on
the idempotency key and on (workspace, version) can back it.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from graphscan.core.exceptions import DuplicateIdempotencyKeyError, GraphVersionConflictError
from graphscan.db.repositories.graph_repository import GraphHeadRepository, GraphVersionRepository
from graphscan.db.repositories.scan_run_repository import ScanRunRepository
from graphscan.schemas.snapshot import ScanSnapshot


class GraphStore(ABC):
    """Transactional access to scan runs and the versioned graph"""

    @abstractmethod
    def transaction(self) -> Any:
        """Async context manager: commit on success, roll back on error"""

    @abstractmethod
    async def get_run(self, scan_run_id: UUID, for_update: bool = False) -> Optional[Any]:
        pass

    @abstractmethod
    async def get_run_by_key(self, idempotency_key: str, for_update: bool = False) -> Optional[Any]:
        pass

    @abstractmethod
    async def insert_run(self, fields: Dict[str, Any]) -> Any:
        """Insert a run; raises DuplicateIdempotencyKeyError if the key is taken"""

    @abstractmethod
    async def patch_run(self, scan_run_id: UUID, fields: Dict[str, Any]) -> Any:
        pass

    @abstractmethod
    async def get_latest_succeeded_run(self, workspace_id: str) -> Optional[Any]:
        pass

    @abstractmethod
    async def get_head(self, workspace_id: str, for_update: bool = False) -> Optional[Any]:
        pass

    @abstractmethod
    async def upsert_head(self, workspace_id: str, latest_version: int) -> Any:
        """Raises GraphVersionConflictError if a concurrent writer created the head first"""

    @abstractmethod
    async def insert_version(self, fields: Dict[str, Any], snapshot: ScanSnapshot) -> Any:
        """Insert an immutable version with its child rows; raises GraphVersionConflictError if the number is taken"""

    @abstractmethod
    async def list_versions(self, workspace_id: str) -> List[int]:
        pass


class SqlAlchemyGraphStore(GraphStore):
    """GraphStore over an AsyncSession and the repositories"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.runs = ScanRunRepository(session)
        self.versions = GraphVersionRepository(session)
        self.heads = GraphHeadRepository(session)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        try:
            yield
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    async def get_run(self, scan_run_id: UUID, for_update: bool = False):
        return await self.runs.get(scan_run_id, for_update=for_update)

    async def get_run_by_key(self, idempotency_key: str, for_update: bool = False):
        return await self.runs.get_by_idempotency_key(idempotency_key, for_update=for_update)

    async def insert_run(self, fields: Dict[str, Any]):
        try:
            return await self.runs.create(fields)
        except IntegrityError as e:
            await self.session.rollback()
            raise DuplicateIdempotencyKeyError(fields["idempotency_key"]) from e

    async def patch_run(self, scan_run_id: UUID, fields: Dict[str, Any]):
        return await self.runs.update(scan_run_id, fields)

    async def get_latest_succeeded_run(self, workspace_id: str):
        return await self.runs.get_latest_succeeded(workspace_id)

    async def get_head(self, workspace_id: str, for_update: bool = False):
        return await self.heads.get_by_workspace(workspace_id, for_update=for_update)

    async def upsert_head(self, workspace_id: str, latest_version: int):
        try:
            return await self.heads.upsert(workspace_id, latest_version)
        except IntegrityError as e:
            raise GraphVersionConflictError(workspace_id, latest_version) from e

    async def insert_version(self, fields: Dict[str, Any], snapshot: ScanSnapshot):
        try:
            return await self.versions.create_with_children(fields, snapshot)
        except IntegrityError as e:
            raise GraphVersionConflictError(fields["workspace_id"], fields["version"]) from e

    async def list_versions(self, workspace_id: str) -> List[int]:
        return await self.versions.list_versions(workspace_id)
