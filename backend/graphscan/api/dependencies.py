# backend/graphscan/api/dependencies.py
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from graphscan.db.database import get_db
from graphscan.services.graph_store import GraphStore, SqlAlchemyGraphStore
from graphscan.services.ingestion_coordinator import IngestionCoordinator


async def get_graph_store(db: AsyncSession = Depends(get_db)) -> GraphStore:
    """Graph store bound to the request's session"""
    return SqlAlchemyGraphStore(db)


async def get_coordinator(store: GraphStore = Depends(get_graph_store)) -> IngestionCoordinator:
    return IngestionCoordinator(store)
