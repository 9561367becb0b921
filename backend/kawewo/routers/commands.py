# kawewo/routers/commands.py
from typing import Any

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field

from kawewo.domain.command_store import list_commands
from kawewo.services.ingest_service import post_command

router = APIRouter(tags=["commands"])


class CommandRequest(BaseModel):
    device_id: str = Field(min_length=1)
    command_type: str = Field(min_length=1)
    payload: Any = None


@router.post("/command")
async def create_command(request: Request, body: CommandRequest):
    cmd = await post_command(
        request.app.state.delivery, body.device_id, body.command_type, body.payload
    )
    return {"ok": True, "command": cmd.to_dict()}


@router.get("/commands")
def get_commands(
    device_id: str = Query(..., min_length=1),
    pending: bool = Query(False),
    limit: int = Query(100, ge=1, le=1000),
):
    rows = list_commands(device_id, pending_only=pending, limit=limit)
    return {"rows": [c.to_dict() for c in rows]}


@router.get("/sessions")
def get_sessions(request: Request):
    return request.app.state.registry.snapshot()
