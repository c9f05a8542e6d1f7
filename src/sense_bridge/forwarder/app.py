import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
import yaml
from loguru import logger

from sense_bridge.common.config import (
    BridgeConfig,
    default_config_paths,
    default_credential_path,
)
from sense_bridge.common.metrics import metrics, start_metrics_server
from sense_bridge.credentials import acquire_credential
from sense_bridge.forwarder.client import EventForwarder
from sense_bridge.forwarder.subscriber import MqttSubscriber


LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

_app_config: Optional[BridgeConfig] = None
_credential_path: Optional[Path] = None
_forwarder: Optional[EventForwarder] = None
_shutdown_event: Optional[asyncio.Event] = None


def get_app_config() -> BridgeConfig:
    global _app_config
    if not _app_config:
        raise RuntimeError("Application config not initialized")
    return _app_config


def get_forwarder() -> EventForwarder:
    global _forwarder
    if not _forwarder:
        raise RuntimeError("Forwarder not initialized")
    return _forwarder


def load_config_from_file(config_path: str) -> BridgeConfig:
    """Load configuration from a YAML (or JSON) file.

    Values from the file take precedence over SENSE_BRIDGE_* environment
    variables.
    """
    file_path = Path(config_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(file_path, "r") as f:
        config_data = yaml.safe_load(f) or {}

    return BridgeConfig(**config_data)


def resolve_config(config_path: Optional[str] = None) -> Tuple[BridgeConfig, Optional[Path]]:
    """Find and load the configuration.

    An explicit path must exist. Otherwise the default locations are tried in
    order, and the environment alone is used when none of them exists.
    """
    if config_path:
        return load_config_from_file(config_path), Path(config_path)

    for candidate in default_config_paths():
        if candidate.exists():
            return load_config_from_file(str(candidate)), candidate
        logger.debug(f"No config file at {candidate}")

    return BridgeConfig(), None


def configure_logging(level: str):
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)


def setup_app(
    config: BridgeConfig,
    config_path: Optional[Path] = None,
    require_topic: bool = True,
):
    """Initialize the application with the given config."""
    global _app_config, _credential_path, _forwarder, _shutdown_event

    configure_logging(config.log_level)

    # Fail before any network or broker activity
    config.validate_required(require_topic=require_topic)

    _credential_path = config.credential_file or default_credential_path(config_path)
    _shutdown_event = asyncio.Event()
    _forwarder = None
    _app_config = config

    logger.info("Sense MQTT bridge initialized")
    logger.info(f"Broker: {config.broker.url} topic: {config.broker.topic}")
    logger.info(f"Ingress: {config.ingress.address}")
    logger.info(f"Credential file: {_credential_path}")


def handle_signal(sig, frame=None):
    """Handle termination signals."""
    global _shutdown_event
    if _shutdown_event:
        logger.info(f"Received signal {sig}, shutting down...")
        _shutdown_event.set()


def install_signal_handlers():
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal, sig)


async def run_bridge(force_register: bool = False):
    """Acquire a credential, then forward broker messages until signalled."""
    global _forwarder
    config = get_app_config()

    # a busy metrics port must fail before any token is issued
    if config.metrics.enabled:
        start_metrics_server(config.metrics.port, config.metrics.host)
        logger.info(f"Metrics server started on {config.metrics.host}:{config.metrics.port}")

    credential = await acquire_credential(
        config.ingress,
        _credential_path,
        device=config.device,
        force=force_register,
    )
    _forwarder = EventForwarder(
        ingress=config.ingress,
        credential=credential,
        transform_config=config.transform,
    )

    install_signal_handlers()
    subscriber = MqttSubscriber(config.broker)

    metrics.up.labels(component="bridge").set(1)
    try:
        await subscriber.run(_forwarder.handle_message, _shutdown_event, config.shutdown_grace)
    finally:
        metrics.up.labels(component="bridge").set(0)
        logger.info("Bye")


async def run_registration():
    """Register unconditionally and store the new credential."""
    config = get_app_config()
    await acquire_credential(
        config.ingress,
        _credential_path,
        device=config.device,
        force=True,
    )


@click.group()
def cli():
    """Sense MQTT bridge CLI"""
    pass


@cli.command("serve")
@click.option(
    "--config",
    "-c",
    default=None,
    help="Path to configuration file",
)
@click.option(
    "--force-register",
    is_flag=True,
    default=False,
    help="Register again even if a credential is stored",
)
def serve(config: Optional[str], force_register: bool):
    """Forward messages from the MQTT topic to the ingestion endpoint."""
    try:
        config_obj, config_path = resolve_config(config)
        setup_app(config_obj, config_path)
        asyncio.run(run_bridge(force_register=force_register))
    except Exception as e:
        logger.error(f"Failed to run bridge: {e}")
        sys.exit(1)


@cli.command("register")
@click.option(
    "--config",
    "-c",
    default=None,
    help="Path to configuration file",
)
def register_command(config: Optional[str]):
    """Register (to replace a bad credential, for instance), then quit."""
    try:
        config_obj, config_path = resolve_config(config)
        setup_app(config_obj, config_path, require_topic=False)
        asyncio.run(run_registration())
    except Exception as e:
        logger.error(f"Failed to register: {e}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
