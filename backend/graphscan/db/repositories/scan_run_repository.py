# backend/graphscan/db/repositories/scan_run_repository.py
from typing import Optional
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from graphscan.core.constants import ScanRunStatus
from graphscan.db.models.scan_run import ScanRun
from graphscan.db.repositories.base import BaseRepository


class ScanRunRepository(BaseRepository[ScanRun]):
    """Repository for ScanRun operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(ScanRun, session)

    async def get_by_idempotency_key(self, idempotency_key: str, for_update: bool = False) -> Optional[ScanRun]:
        """Get the run owning an idempotency key"""
        query = select(ScanRun).where(ScanRun.idempotency_key == idempotency_key)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_latest_succeeded(self, workspace_id: str) -> Optional[ScanRun]:
        """Most recently started succeeded run for a workspace"""
        result = await self.session.execute(
            select(ScanRun)
            .where(
                and_(
                    ScanRun.workspace_id == workspace_id,
                    ScanRun.status == ScanRunStatus.SUCCEEDED.value,
                )
            )
            .order_by(ScanRun.started_at.desc(), ScanRun.graph_version_number.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
