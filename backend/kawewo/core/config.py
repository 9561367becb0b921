# kawewo/core/config.py
import logging
import os

logger = logging.getLogger(__name__)

# local .env only; deployed environments set real env vars
try:
    from dotenv import load_dotenv
    _ENV_PATH = os.path.join(os.path.dirname(os.path.dirname(__file__)), "..", ".env")
    _ENV_PATH = os.path.abspath(_ENV_PATH)
    if os.path.exists(_ENV_PATH):
        load_dotenv(dotenv_path=_ENV_PATH, override=False)
        logger.info(".env loaded: %s", _ENV_PATH)
    else:
        logger.debug(".env not found -> using OS env only")
except ImportError as e:
    logger.warning(".env load failed: %s", e)


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        logger.warning("invalid %s=%r, using %s", name, os.getenv(name), default)
        return default


# =========================
# Logging
# =========================
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# =========================
# CORS
# =========================
_cors_env = os.getenv("CORS_ORIGINS", "").strip()
ALLOWED_ORIGINS = [x.strip() for x in _cors_env.split(",") if x.strip()] or ["*"]

# =========================
# Store (SQLite)
# =========================
DB_PATH = os.getenv("KAWEWO_DB_PATH", "./data/kawewo.db")

# =========================
# Telemetry
# =========================
TELEMETRY_RECENT_LIMIT = _int_env("TELEMETRY_RECENT_LIMIT", 50)
TELEMETRY_RECENT_MAX = _int_env("TELEMETRY_RECENT_MAX", 500)
FAN_MAX_RPM = _int_env("FAN_MAX_RPM", 2400)

# =========================
# MQTT
# =========================
MQTT_HOST = os.getenv("MQTT_HOST", "")
MQTT_PORT = _int_env("MQTT_PORT", 1883)
MQTT_USER = os.getenv("MQTT_USER", "")
MQTT_PASS = os.getenv("MQTT_PASS", "")
MQTT_TOPIC = os.getenv("MQTT_TOPIC", "kawewo/+/telemetry")
MQTT_TLS = os.getenv("MQTT_TLS", "0") == "1"

# =========================
# Influx
# =========================
INFLUX_URL = os.getenv("INFLUX_URL", "")
INFLUX_TOKEN = os.getenv("INFLUX_TOKEN", "")
INFLUX_ORG = os.getenv("INFLUX_ORG", "")
INFLUX_BUCKET = os.getenv("INFLUX_BUCKET", "")
INFLUX_MEASUREMENT = os.getenv("INFLUX_MEASUREMENT", "climate")
