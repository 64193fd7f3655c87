"""
API routes for LogVault.

Route structure:
    - /api/health            health check (any method)
    - POST /api/create       create a log
    - GET /api/list          list logs (optionally paginated)
    - GET /api/fetch/i/{id}  fetch by id (exactly one log)
    - GET /api/fetch/t/{ts}  latest log at or before a timestamp
    - GET /api/fetch/f/{flag} logs with a flag (a list)
    - DELETE /api/delete/{id} delete a log (only flags ranked below 4)

Path and body values are passed to the LogService as raw strings; all
parsing and validation happens there.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..service import LogService
from ..store import LogRecord

logger = logging.getLogger(__name__)

router = APIRouter(tags=["LogVault"])


# --- Request/Response Models ---


class LogCreateRequest(BaseModel):
    """Request to create a log."""

    flag: str | None = Field(None, description="Severity flag, defaults to info")
    message: str = Field("", description="Log message")


class LogResponse(BaseModel):
    """Log response."""

    id: str
    flag: str
    message: str
    timestamp: datetime

    @classmethod
    def from_record(cls, record: LogRecord) -> LogResponse:
        return cls(
            id=record.id,
            flag=record.flag.value,
            message=record.message,
            timestamp=record.timestamp,
        )


class DeleteResponse(BaseModel):
    """Confirmation of a deletion."""

    id: str
    message: str


# --- Dependencies ---


def get_service(request: Request) -> LogService:
    """Get the log service from app state."""
    return request.app.state.log_service


# --- Routes ---


@router.api_route(
    "/health",
    methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
)
async def health(request: Request, service: LogService = Depends(get_service)):
    """
    Health check.

    Reports storage reachability and the schema state. Returns 503 when
    the database does not answer or the schema is not provisioned.
    """
    result: dict[str, Any] = await service.health()

    provisioner = request.app.state.provisioner
    try:
        schema = (await provisioner.status()).to_dict()
        result["schema"] = schema
        result["healthy"] = result["healthy"] and schema["provisioned"]
    except Exception as e:
        logger.error(f"Schema status unavailable: {e}")
        result["healthy"] = False
        result["schema"] = None

    result["status"] = "ok" if result["healthy"] else "degraded"
    code = status.HTTP_200_OK if result["healthy"] else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(result, status_code=code)


@router.post("/create", response_model=LogResponse, status_code=status.HTTP_201_CREATED)
async def create_log(
    body: LogCreateRequest,
    service: LogService = Depends(get_service),
):
    """Create a log. An empty or missing flag is stored as info."""
    record = await service.create(body.flag, body.message)
    return LogResponse.from_record(record)


@router.get("/list", response_model=list[LogResponse])
async def list_logs(
    limit: int | None = Query(None, description="Page size; omit for every log"),
    offset: int = Query(0, description="Pagination offset"),
    service: LogService = Depends(get_service),
):
    """List logs. Paginated pages are ordered newest first."""
    records = await service.list_all(limit=limit, offset=offset)
    return [LogResponse.from_record(r) for r in records]


@router.get("/fetch/i/{record_id}", response_model=LogResponse)
async def fetch_by_id(record_id: str, service: LogService = Depends(get_service)):
    """Fetch exactly one log by id."""
    record = await service.fetch_by_id(record_id)
    return LogResponse.from_record(record)


@router.get("/fetch/t/{timestamp}", response_model=LogResponse)
async def fetch_by_timestamp(timestamp: str, service: LogService = Depends(get_service)):
    """Fetch the latest log at or before an RFC 3339 timestamp."""
    record = await service.fetch_at_or_before(timestamp)
    return LogResponse.from_record(record)


@router.get("/fetch/f/{flag}", response_model=list[LogResponse])
async def fetch_by_flag(flag: str, service: LogService = Depends(get_service)):
    """Fetch every log with a flag (case-insensitive)."""
    records = await service.fetch_by_flag(flag)
    return [LogResponse.from_record(r) for r in records]


@router.delete("/delete/{record_id}", response_model=DeleteResponse)
async def delete_log(record_id: str, service: LogService = Depends(get_service)):
    """Delete a log. Logs flagged error or trace cannot be deleted."""
    record = await service.delete(record_id)
    return DeleteResponse(id=record.id, message="Log deleted")
