# kawewo/services/influx_service.py
import logging
from datetime import datetime, timezone

from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS

from kawewo.core.config import (
    INFLUX_URL, INFLUX_TOKEN, INFLUX_ORG, INFLUX_BUCKET, INFLUX_MEASUREMENT
)
from kawewo.domain.telemetry_store import TelemetryReading

logger = logging.getLogger(__name__)

_influx_client = None
_influx_write = None

_FIELDS = ("temperature", "humidity", "fan_rpm")


def init_influx():
    global _influx_client, _influx_write
    if not (INFLUX_URL and INFLUX_TOKEN and INFLUX_ORG and INFLUX_BUCKET):
        logger.info("Influx env missing -> telemetry mirror disabled")
        return

    try:
        _influx_client = InfluxDBClient(url=INFLUX_URL, token=INFLUX_TOKEN, org=INFLUX_ORG)
        try:
            ok = _influx_client.ping()
            logger.info("Influx ping: %s", ok)
        except Exception as e:
            logger.warning("Influx ping failed: %r", e)

        _influx_write = _influx_client.write_api(write_options=SYNCHRONOUS)

        logger.info("Influx ready: %s", {
            "url": INFLUX_URL,
            "org": INFLUX_ORG,
            "bucket": INFLUX_BUCKET,
            "meas": INFLUX_MEASUREMENT,
        })
    except Exception as e:
        logger.error("Influx init failed: %r", e)
        _influx_client = None
        _influx_write = None


def close_influx():
    global _influx_client, _influx_write
    try:
        if _influx_client:
            _influx_client.close()
    except Exception as e:
        logger.debug("Influx close failed: %r", e)
    _influx_client = None
    _influx_write = None


def build_point(reading: TelemetryReading):
    p = Point(INFLUX_MEASUREMENT)
    p.tag("device_id", str(reading.device_id))

    for k in _FIELDS:
        v = getattr(reading, k)
        if v is not None:
            p.field(k, float(v))

    for k, v in reading.extra.items():
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            p.field(k, float(v))

    return p.time(reading_time_ns(reading), WritePrecision.NS)


def reading_time_ns(reading: TelemetryReading):
    if reading.received_at:
        try:
            dt = datetime.fromisoformat(str(reading.received_at)).replace(tzinfo=timezone.utc)
            return int(dt.timestamp() * 1_000_000_000)
        except ValueError:
            pass
    return int(datetime.now(timezone.utc).timestamp() * 1_000_000_000)


def write_reading(reading: TelemetryReading) -> bool:
    """Mirror one stored reading. The SQLite row stays the source of truth."""
    if not _influx_write:
        return False

    try:
        _influx_write.write(bucket=INFLUX_BUCKET, org=INFLUX_ORG, record=build_point(reading))
    except Exception as e:
        logger.error("Influx write failed: %r", e)
        return False
    return True
