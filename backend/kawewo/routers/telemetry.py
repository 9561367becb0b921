# kawewo/routers/telemetry.py
import logging
from typing import Optional

from fastapi import APIRouter, Body, HTTPException, Query, Request

from kawewo.core.config import TELEMETRY_RECENT_LIMIT, TELEMETRY_RECENT_MAX
from kawewo.domain.telemetry_store import recent_readings
from kawewo.services.ingest_service import ingest_telemetry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["telemetry"])


@router.post("/telemetry")
async def post_telemetry(request: Request, body: dict = Body(...)):
    try:
        reading = await ingest_telemetry(request.app.state.registry, body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "reading": reading.to_dict()}


@router.get("/telemetry/recent")
def get_recent(
    device_id: Optional[str] = Query(None),
    limit: int = Query(TELEMETRY_RECENT_LIMIT, ge=1),
):
    rows = recent_readings(device_id or None, min(limit, TELEMETRY_RECENT_MAX))
    return {"rows": [r.to_dict() for r in rows]}
