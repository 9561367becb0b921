# kawewo/core/cors.py
from fastapi.middleware.cors import CORSMiddleware
from .config import ALLOWED_ORIGINS

def setup_cors(app):
    # credentials cannot be combined with a wildcard origin
    wildcard = ALLOWED_ORIGINS == ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=not wildcard,
        allow_methods=["*"],
        allow_headers=["*"],
    )
