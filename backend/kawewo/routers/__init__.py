# kawewo/routers/__init__.py
from .commands import router as commands_router
from .telemetry import router as telemetry_router
from .ws import router as ws_router
