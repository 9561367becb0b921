# server.py
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from kawewo.core.config import LOG_LEVEL, MQTT_HOST
from kawewo.core.cors import setup_cors
from kawewo.core.errors import StoreUnavailable
from kawewo.core.logging import configure_logging
from kawewo.db import init_db
from kawewo.routers import commands_router, telemetry_router, ws_router
from kawewo.services import influx_service, mqtt_service
from kawewo.services.delivery_service import DeliveryEngine
from kawewo.ws.manager import SessionRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    influx_service.init_influx()
    if MQTT_HOST:
        mqtt_service.set_main_loop(asyncio.get_running_loop(), app.state.registry)
        mqtt_service.start_mqtt()
    else:
        logger.info("MQTT_HOST empty -> MQTT bridge not started")
    yield
    mqtt_service.stop_mqtt()
    influx_service.close_influx()


def create_app() -> FastAPI:
    app = FastAPI(title="kawewo relay", lifespan=lifespan)
    setup_cors(app)

    registry = SessionRegistry()
    app.state.registry = registry
    app.state.delivery = DeliveryEngine(registry)

    app.include_router(telemetry_router)
    app.include_router(commands_router)
    app.include_router(ws_router)

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable(request: Request, exc: StoreUnavailable):
        logger.error("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"error": "db error"})

    @app.get("/", response_class=PlainTextResponse)
    def root():
        return "Backend is running!"

    return app


configure_logging(LOG_LEVEL)
app = create_app()
