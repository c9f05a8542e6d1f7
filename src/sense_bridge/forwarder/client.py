import asyncio
import time
from typing import Optional, Tuple
from urllib.parse import urlparse

import aiohttp
from loguru import logger

from sense_bridge.common.config import IngressConfig, TransformConfig
from sense_bridge.common.errors import ForwardFailed, TransformError
from sense_bridge.common.metrics import metrics, measure_time
from sense_bridge.common.models import Credential, InboundMessage
from sense_bridge.forwarder.transform import transform


class EventForwarder:
    """Turns inbound broker messages into ingestion events.

    Everything a forward needs (endpoint, credential, policies) is fixed at
    construction, so concurrent handler tasks only ever read shared state.
    """

    def __init__(
        self,
        ingress: IngressConfig,
        credential: Credential,
        transform_config: Optional[TransformConfig] = None,
    ):
        self.ingress = ingress
        self.credential = credential
        self.transform_config = transform_config or TransformConfig()
        self.target_url = ingress.events_url

        # Extract hostname for metrics labels
        parsed_url = urlparse(self.target_url)
        self.target_label = f"{parsed_url.netloc}{parsed_url.path}"

    async def forward(self, payload: bytes) -> Tuple[int, str]:
        """POST one event to the ingestion endpoint.

        Returns the status code and response body. Transport errors and
        timeouts raise ForwardFailed. There is no retry.
        """
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.credential.value}",
        }
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.target_url,
                    headers=headers,
                    data=payload,
                    timeout=aiohttp.ClientTimeout(total=self.ingress.timeout),
                ) as response:
                    return response.status, await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ForwardFailed(f"error forwarding event to {self.target_url}: {e!r}") from e

    def prepare(self, message: InboundMessage) -> bytes:
        """Transform the payload, falling back to the original on failure."""
        try:
            return transform(message.payload, self.transform_config)
        except TransformError as e:
            metrics.transform_errors.labels(reason=e.reason).inc()
            logger.warning(f"TOPIC: {message.topic} unable to transform payload: {e}")
            return e.payload
        except Exception as e:
            metrics.transform_errors.labels(reason="unexpected").inc()
            logger.exception(f"TOPIC: {message.topic} unexpected error transforming payload: {e}")
            return message.payload

    @measure_time(metrics.forward_latency, lambda self: {"target": self.target_label})
    async def handle_message(self, message: InboundMessage) -> bool:
        """Transform and forward a single message. Never raises."""
        start = time.monotonic()
        payload = self.prepare(message)
        text = payload.decode("utf-8", errors="replace")

        try:
            status, body = await self.forward(payload)
        except ForwardFailed as e:
            metrics.forward_errors.labels(target=self.target_label, status_code="error").inc()
            logger.error(
                f"TOPIC: {message.topic} MSG: {text} "
                f"Duration: {time.monotonic() - start:.3f}s Error: {e}"
            )
            return False
        except Exception as e:
            metrics.forward_errors.labels(target=self.target_label, status_code="error").inc()
            logger.exception(f"TOPIC: {message.topic} unexpected error forwarding event: {e}")
            return False

        duration = time.monotonic() - start
        if self.ingress.is_accepted(status):
            metrics.forward_total.labels(target=self.target_label).inc()
            logger.info(
                f"TOPIC: {message.topic} MSG: {text} "
                f"STATUSCODE: {status} Duration: {duration:.3f}s"
            )
            return True

        metrics.forward_errors.labels(target=self.target_label, status_code=status).inc()
        logger.error(
            f"TOPIC: {message.topic} MSG: {text} "
            f"STATUSCODE: {status} Duration: {duration:.3f}s Response: {body}"
        )
        return False
