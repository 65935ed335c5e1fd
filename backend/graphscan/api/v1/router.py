from fastapi import APIRouter
from graphscan.api.v1 import ingest

api_router = APIRouter()

api_router.include_router(ingest.router, prefix="/scanner", tags=["scanner"])
