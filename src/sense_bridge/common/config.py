from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sense_bridge.common.errors import ConfigMissing


CONFIG_DIR_NAME = ".sense"
CONFIG_FILE_NAME = "mqtt-client-conf.json"
CREDENTIAL_FILE_NAME = "mqtt-client-jwt"

# Flat keys used by mqtt-client-conf.json files of earlier client releases
LEGACY_KEYS = {
    "mqtt-broker-address": ("broker", "host"),
    "mqtt-broker-port": ("broker", "port"),
    "mqtt-topic": ("broker", "topic"),
    "sense-ingress-address": ("ingress", "address"),
    "sense-ingress-api-key": ("ingress", "api_key"),
}


class TimestampFormat(str, Enum):
    RAW = "raw"
    ISO8601 = "iso8601"


class BrokerConfig(BaseModel):
    host: str = "localhost"
    port: int = 1883
    topic: str = ""
    client_id_prefix: str = "mqtt-client-"
    keepalive: int = 60
    timeout: float = 10.0  # seconds
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def url(self) -> str:
        return f"tcp://{self.host}:{self.port}"


class IngressConfig(BaseModel):
    address: str = ""
    api_key: str = ""
    # None accepts any status below 400
    accepted_status: Optional[int] = 204
    timeout: float = 10.0  # seconds

    @property
    def events_url(self) -> str:
        return f"{self.address.rstrip('/')}/v1/iot/events"

    def is_accepted(self, status_code: int) -> bool:
        if self.accepted_status is None:
            return status_code < 400
        return status_code == self.accepted_status


class TransformConfig(BaseModel):
    timestamp_format: TimestampFormat = TimestampFormat.RAW
    timestamp_field: str = "timestamp"
    value_field: str = "value"
    reserved_fields: List[str] = Field(default_factory=lambda: ["timestamp"])

    def guarded_fields(self) -> List[str]:
        """Fields whose presence blocks the datum extraction."""
        fields = [self.timestamp_field, self.value_field]
        for name in self.reserved_fields:
            if name not in fields:
                fields.append(name)
        return fields


class DeviceConfig(BaseModel):
    manufacturer: str = "Intel"
    model: str = "Advantech"
    os: str = "wrlinux"
    os_version: str = "7.0.0.13"
    software_version: str = "sense-mqtt-client-v1.0"
    type: str = "wrlinux"
    sensors: List[str] = Field(default_factory=lambda: ["temperature", "humidity"])


class MetricsConfig(BaseModel):
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 9090


class BridgeConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="SENSE_BRIDGE_",
        extra="ignore",
    )

    log_level: str = "INFO"
    broker: BrokerConfig = BrokerConfig()
    ingress: IngressConfig = IngressConfig()
    transform: TransformConfig = TransformConfig()
    device: DeviceConfig = DeviceConfig()
    metrics: MetricsConfig = MetricsConfig()
    credential_file: Optional[Path] = None
    shutdown_grace: float = 0.25  # seconds

    @model_validator(mode="before")
    @classmethod
    def map_legacy_keys(cls, data: Any) -> Any:
        """Fold the flat legacy keys into their nested sections."""
        if not isinstance(data, dict) or not any(key in data for key in LEGACY_KEYS):
            return data

        data = dict(data)
        for key, (section, field) in LEGACY_KEYS.items():
            if key not in data:
                continue
            value = data.pop(key)
            nested = data.get(section) or {}
            if isinstance(nested, BaseModel):
                nested = nested.model_dump()
            data[section] = {**nested, field: value}
        return data

    def validate_required(self, require_topic: bool = True) -> None:
        if require_topic and not self.broker.topic:
            raise ConfigMissing("broker.topic", "mqtt topic")
        if not self.ingress.address:
            raise ConfigMissing("ingress.address", "Sense Ingress API server address")
        if not self.ingress.api_key:
            raise ConfigMissing("ingress.api_key", "Sense Ingress API key")


def default_config_paths() -> List[Path]:
    """Config file locations tried in order when none is given explicitly."""
    paths = []
    try:
        paths.append(Path.home() / CONFIG_DIR_NAME / CONFIG_FILE_NAME)
    except RuntimeError:
        pass
    paths.append(Path(".") / CONFIG_FILE_NAME)
    return paths


def default_credential_path(config_path: Optional[Path] = None) -> Path:
    """The credential file sits next to the config file it belongs to."""
    if config_path is not None:
        return config_path.parent / CREDENTIAL_FILE_NAME
    try:
        return Path.home() / CONFIG_DIR_NAME / CREDENTIAL_FILE_NAME
    except RuntimeError:
        return Path(".") / CREDENTIAL_FILE_NAME
