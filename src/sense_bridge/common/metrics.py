import time
from functools import wraps
from typing import Callable, Dict, Optional, Union

from loguru import logger
from prometheus_client import REGISTRY, Counter, Gauge, Histogram, start_http_server


class MetricsRegistry:
    def __init__(self, registry=None):
        # Use a provided registry or the default one
        self.registry = registry or REGISTRY

        # Broker side
        self.messages_received_total = Counter(
            "sense_bridge_messages_received_total",
            "Total number of messages received from the broker",
            ["topic"],
            registry=self.registry,
        )
        self.transform_errors = Counter(
            "sense_bridge_transform_errors",
            "Total number of payloads that could not be transformed",
            ["reason"],
            registry=self.registry,
        )

        # Ingress side
        self.forward_total = Counter(
            "sense_bridge_forward_total",
            "Total number of events accepted by the ingestion endpoint",
            ["target"],
            registry=self.registry,
        )
        self.forward_errors = Counter(
            "sense_bridge_forward_errors",
            "Total number of events the ingestion endpoint did not accept",
            ["target", "status_code"],
            registry=self.registry,
        )
        self.forward_latency = Histogram(
            "sense_bridge_forward_seconds",
            "Time spent handling a message, transform included",
            ["target"],
            registry=self.registry,
        )
        self.registration_total = Counter(
            "sense_bridge_registration_total",
            "Total number of registration attempts",
            ["outcome"],
            registry=self.registry,
        )

        self.up = Gauge(
            "sense_bridge_up",
            "Whether the bridge is subscribed and forwarding",
            ["component"],
            registry=self.registry,
        )


# Global metrics registry
metrics = MetricsRegistry()


def start_metrics_server(port: int = 9090, host: str = "127.0.0.1"):
    """Start the Prometheus metrics server."""
    start_http_server(port, host)


def measure_time(
    metric: Histogram, labels: Optional[Union[Dict[str, str], Callable]] = None
) -> Callable:
    """Decorator to measure the execution time of a coroutine."""

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            labels_dict = {}
            if callable(labels) and args:
                try:
                    labels_dict = labels(args[0])
                except Exception as e:
                    logger.error(f"Error getting labels from function: {e}")
            elif isinstance(labels, dict):
                labels_dict = labels

            start_time = time.monotonic()
            try:
                return await func(*args, **kwargs)
            finally:
                duration = time.monotonic() - start_time
                try:
                    metric.labels(**labels_dict).observe(duration)
                except Exception as e:
                    logger.error(f"Error recording metric: {e}")

        return wrapper

    return decorator
