"""Forwarder component of the Sense MQTT bridge."""

from sense_bridge.forwarder.app import (
    cli,
    get_app_config,
    get_forwarder,
    load_config_from_file,
    resolve_config,
    run_bridge,
    run_registration,
    setup_app,
)
from sense_bridge.forwarder.client import EventForwarder
from sense_bridge.forwarder.subscriber import MqttSubscriber
from sense_bridge.forwarder.transform import epoch_millis_to_iso8601, transform

__all__ = [
    "get_app_config",
    "get_forwarder",
    "load_config_from_file",
    "resolve_config",
    "setup_app",
    "run_bridge",
    "run_registration",
    "cli",
    "EventForwarder",
    "MqttSubscriber",
    "epoch_millis_to_iso8601",
    "transform",
]
