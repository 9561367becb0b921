# kawewo/services/mqtt_service.py
import asyncio
import json
import logging
import time
from typing import Optional

import paho.mqtt.client as mqtt

from kawewo.core.config import MQTT_HOST, MQTT_PORT, MQTT_USER, MQTT_PASS, MQTT_TOPIC, MQTT_TLS
from kawewo.services.ingest_service import ingest_telemetry
from kawewo.ws.manager import SessionRegistry

logger = logging.getLogger(__name__)

mqtt_client = None
_RC_TEXT = {0: "Success", 4: "Bad username or password", 5: "Not authorized"}

# uvicorn main loop; paho callbacks run on the client's network thread
_MAIN_LOOP: Optional[asyncio.AbstractEventLoop] = None
_REGISTRY: Optional[SessionRegistry] = None


def set_main_loop(loop: asyncio.AbstractEventLoop, registry: SessionRegistry):
    """Register the server loop and registry so MQTT callbacks can hand
    readings to the async ingest path."""
    global _MAIN_LOOP, _REGISTRY
    _MAIN_LOOP = loop
    _REGISTRY = registry


def parse_topic(topic: str) -> Optional[str]:
    """
    expected topic: kawewo/<device_id>/telemetry
    return: device_id
    """
    parts = (topic or "").split("/")
    if len(parts) != 3 or parts[2] != "telemetry" or not parts[1]:
        return None
    return parts[1]


def decode_message(topic: str, payload_raw: bytes) -> Optional[dict]:
    device_id = parse_topic(topic)
    if not device_id:
        logger.debug("ignoring topic %s", topic)
        return None

    try:
        obj = json.loads(payload_raw.decode("utf-8", errors="ignore"))
    except ValueError:
        logger.warning("malformed telemetry on %s", topic)
        return None
    if not isinstance(obj, dict):
        logger.warning("telemetry on %s is not an object", topic)
        return None

    # topic wins over a device_id in the body
    obj["device_id"] = device_id
    return obj


def on_connect(client, userdata, flags, rc, properties=None):
    try:
        rc_num = int(rc)
    except (TypeError, ValueError):
        rc_num = None

    if rc_num is not None:
        logger.info("MQTT connected rc=%s (%s)", rc_num, _RC_TEXT.get(rc_num, "Unknown"))
        if rc_num != 0:
            logger.error("MQTT connect failed. Check credentials/permissions.")
            return
    else:
        logger.info("MQTT connected rc=%s", rc)
        if str(rc).lower() not in ("0", "success"):
            logger.error("MQTT connect failed (rc is not success)")
            return

    try:
        client.subscribe(MQTT_TOPIC)
        logger.info("subscribed: %s", MQTT_TOPIC)
    except Exception as e:
        logger.error("subscribe failed: %r", e)


def on_message(client, userdata, msg):
    payload = decode_message(msg.topic, msg.payload)
    if payload is None:
        return

    if not (_MAIN_LOOP and _MAIN_LOOP.is_running() and _REGISTRY is not None):
        logger.warning("MQTT telemetry skipped: main loop not ready")
        return

    future = asyncio.run_coroutine_threadsafe(ingest_telemetry(_REGISTRY, payload), _MAIN_LOOP)
    future.add_done_callback(_log_ingest_failure)


def _log_ingest_failure(future):
    exc = future.exception()
    if exc is not None:
        logger.error("MQTT telemetry ingest failed: %r", exc)


def start_mqtt():
    global mqtt_client
    if mqtt_client:
        return

    logger.info("MQTT env: %s", {
        "host": MQTT_HOST,
        "port": MQTT_PORT,
        "user": MQTT_USER,
        "tls": MQTT_TLS,
        "topic": MQTT_TOPIC,
        "pass_set": bool(MQTT_PASS),
    })

    mqtt_client = mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id="kawewo_relay_" + str(int(time.time()))
    )

    if MQTT_USER:
        mqtt_client.username_pw_set(MQTT_USER, MQTT_PASS)

    if MQTT_TLS:
        mqtt_client.tls_set()

    mqtt_client.on_connect = on_connect
    mqtt_client.on_message = on_message

    mqtt_client.connect(MQTT_HOST, MQTT_PORT, keepalive=60)
    mqtt_client.loop_start()


def stop_mqtt():
    global mqtt_client
    if not mqtt_client:
        return
    mqtt_client.loop_stop()
    mqtt_client.disconnect()
    mqtt_client = None
