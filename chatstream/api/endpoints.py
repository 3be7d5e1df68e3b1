"""API endpoints for the telemetry sink."""

import json
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from chatstream import __version__
from chatstream.models.conversation import HealthResponse, TelemetryAck, TelemetryEvent
from chatstream.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


def get_telemetry_log_path() -> Path:
    """Where telemetry records are appended, one JSON object per line."""
    return Path(os.getenv("CHATSTREAM_TELEMETRY_LOG", "telemetry.log"))


@router.post("/api/telemetry", response_model=TelemetryAck, tags=["Telemetry"])
def record_telemetry(
    event: TelemetryEvent,
    log_path: Annotated[Path, Depends(get_telemetry_log_path)],
) -> TelemetryAck | JSONResponse:
    """Append a telemetry record, stamped with the time it was received.

    Plain ``def`` so FastAPI runs the file write in its threadpool.
    """
    entry = {"receivedAt": datetime.now(UTC).isoformat(), **event.model_dump()}
    try:
        with log_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry) + "\n")
    except OSError as e:
        logger.error(f"Failed to write telemetry record to {log_path}: {e}")
        return JSONResponse(status_code=500, content={"status": "error"})

    logger.debug(f"Recorded telemetry event {event.event}")
    return TelemetryAck(status="ok")


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
