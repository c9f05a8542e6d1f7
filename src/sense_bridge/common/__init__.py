"""Common configuration, models, errors and metrics for the Sense MQTT bridge."""

from sense_bridge.common.config import (
    BridgeConfig,
    BrokerConfig,
    DeviceConfig,
    IngressConfig,
    MetricsConfig,
    TimestampFormat,
    TransformConfig,
)
from sense_bridge.common.errors import (
    BridgeError,
    BrokerConnectFailed,
    BrokerError,
    BrokerSubscribeFailed,
    BrokerUnsubscribeFailed,
    ConfigMissing,
    CredentialPersistFailed,
    FieldCollision,
    ForwardFailed,
    MalformedDatum,
    MalformedPayload,
    RegistrationFailed,
    TransformError,
)
from sense_bridge.common.models import (
    Credential,
    CredentialSource,
    DeviceProperties,
    InboundMessage,
    RegistrationRequest,
    RegistrationResponse,
)
from sense_bridge.common.metrics import (
    MetricsRegistry,
    metrics,
    measure_time,
    start_metrics_server,
)

__all__ = [
    # Config
    "BridgeConfig",
    "BrokerConfig",
    "DeviceConfig",
    "IngressConfig",
    "MetricsConfig",
    "TimestampFormat",
    "TransformConfig",
    # Errors
    "BridgeError",
    "BrokerConnectFailed",
    "BrokerError",
    "BrokerSubscribeFailed",
    "BrokerUnsubscribeFailed",
    "ConfigMissing",
    "CredentialPersistFailed",
    "FieldCollision",
    "ForwardFailed",
    "MalformedDatum",
    "MalformedPayload",
    "RegistrationFailed",
    "TransformError",
    # Models
    "Credential",
    "CredentialSource",
    "DeviceProperties",
    "InboundMessage",
    "RegistrationRequest",
    "RegistrationResponse",
    # Metrics
    "MetricsRegistry",
    "metrics",
    "measure_time",
    "start_metrics_server",
]
