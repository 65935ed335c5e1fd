# backend/graphscan/api/v1/ingest.py
import json

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from graphscan.api.dependencies import get_coordinator
from graphscan.core.exceptions import IngestionValidationError
from graphscan.core.logging import logger
from graphscan.schemas.ingestion import IngestionRequest, IngestionResult, LatestScanRun
from graphscan.services.ingestion_coordinator import IngestionCoordinator

router = APIRouter()


def format_validation_error(error: ValidationError) -> str:
    """First validation problem as `field.path: message`"""
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    if not location:
        return first["msg"]
    return f"{location}: {first['msg']}"


@router.post(
    "/ingest",
    response_model=IngestionResult,
    response_model_by_alias=True,
    responses={202: {"model": IngestionResult}},
)
async def ingest_snapshot(
    request: Request,
    coordinator: IngestionCoordinator = Depends(get_coordinator),
):
    """
    Ingest a scanner snapshot.

    Returns 200 once the snapshot is committed (or was already committed under
    the same key) and 202 while another attempt for the key is processing.
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"errorCode": "INVALID_JSON", "message": "Request body must be valid JSON."},
        )

    try:
        ingestion_request = IngestionRequest.model_validate(body)
    except ValidationError as e:
        raise IngestionValidationError(format_validation_error(e)) from e

    result = await coordinator.ingest(ingestion_request)

    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED if result.status == "processing" else status.HTTP_200_OK,
        content=result.model_dump(mode="json", by_alias=True),
    )


@router.get("/runs/latest")
async def get_latest_run(
    workspace_id: str = Query("", alias="workspaceId"),
    coordinator: IngestionCoordinator = Depends(get_coordinator),
):
    """Latest succeeded scan run for a workspace, or null"""
    latest: LatestScanRun = await coordinator.get_latest_successful_run(workspace_id)
    if latest is None:
        logger.info("No succeeded scan run yet", extra={"workspace_id": workspace_id})
        return None
    return latest.model_dump(mode="json", by_alias=True)
