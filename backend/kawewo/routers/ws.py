# kawewo/routers/ws.py
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from kawewo.ws.dispatcher import handle_message

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ws"])


@router.websocket("/ws")
async def ws_session(ws: WebSocket):
    registry = ws.app.state.registry
    engine = ws.app.state.delivery

    await registry.connect(ws)
    logger.info("ws connected")
    try:
        while True:
            frame = await ws.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", 1000))
            raw = frame.get("text")
            if raw is None:
                raw = frame.get("bytes") or b""
            await handle_message(engine, ws, raw)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("ws session error")
    finally:
        await registry.unregister(ws)
        logger.info("ws closed")
