import asyncio
import contextlib
import uuid
from typing import Any, Awaitable, Callable, Set

import aiomqtt
from loguru import logger

from sense_bridge.common.config import BrokerConfig
from sense_bridge.common.errors import (
    BrokerConnectFailed,
    BrokerError,
    BrokerSubscribeFailed,
    BrokerUnsubscribeFailed,
)
from sense_bridge.common.metrics import metrics
from sense_bridge.common.models import InboundMessage


MessageHandler = Callable[[InboundMessage], Awaitable[Any]]

# at-most-once delivery
SUBSCRIBE_QOS = 0


def _as_bytes(payload: Any) -> bytes:
    if payload is None:
        return b""
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    return str(payload).encode("utf-8")


class MqttSubscriber:
    """Subscription to a single MQTT topic.

    Messages arrive through aiomqtt's async iterator on the event loop. Each
    one is handed to the handler in its own task, so handlers run
    concurrently and finish in no particular order.
    """

    def __init__(self, config: BrokerConfig):
        self.config = config
        # duplicate client ids stall every client sharing them
        self.client_id = f"{config.client_id_prefix}{uuid.uuid4().hex}"
        self._tasks: Set[asyncio.Task] = set()

    def create_client(self) -> aiomqtt.Client:
        return aiomqtt.Client(
            hostname=self.config.host,
            port=self.config.port,
            identifier=self.client_id,
            username=self.config.username,
            password=self.config.password,
            keepalive=self.config.keepalive,
            timeout=self.config.timeout,
        )

    def dispatch(self, message: InboundMessage, handler: MessageHandler) -> asyncio.Task:
        task = asyncio.create_task(handler(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def consume(self, client: aiomqtt.Client, handler: MessageHandler):
        async for message in client.messages:
            inbound = InboundMessage(
                topic=message.topic.value,
                payload=_as_bytes(message.payload),
            )
            metrics.messages_received_total.labels(topic=inbound.topic).inc()
            logger.debug(f"Received message on {inbound.topic} ({len(inbound.payload)} bytes)")
            self.dispatch(inbound, handler)

    async def unsubscribe(self, client: aiomqtt.Client):
        try:
            await client.unsubscribe(self.config.topic)
        except aiomqtt.MqttError as e:
            raise BrokerUnsubscribeFailed(
                f"unable to unsubscribe from topic '{self.config.topic}': {e}"
            ) from e
        logger.info(f"Unsubscribed from {self.config.topic}")

    async def drain(self, grace: float):
        """Give in-flight handlers up to ``grace`` seconds to finish."""
        if not self._tasks:
            return
        logger.info(f"Waiting up to {grace}s for {len(self._tasks)} in-flight events")
        _, pending = await asyncio.wait(set(self._tasks), timeout=grace)
        if pending:
            logger.warning(f"{len(pending)} events still in flight at shutdown")

    async def run(
        self,
        handler: MessageHandler,
        shutdown_event: asyncio.Event,
        grace: float = 0.25,
    ):
        """Connect, subscribe and dispatch messages until shutdown is requested."""
        stack = contextlib.AsyncExitStack()
        logger.info(f"Connecting to {self.config.url} as {self.client_id}")
        try:
            client = await stack.enter_async_context(self.create_client())
        except aiomqtt.MqttError as e:
            raise BrokerConnectFailed(f"unable to connect to {self.config.url}: {e}") from e

        try:
            try:
                await client.subscribe(self.config.topic, qos=SUBSCRIBE_QOS)
            except aiomqtt.MqttError as e:
                raise BrokerSubscribeFailed(
                    f"unable to subscribe to topic '{self.config.topic}': {e}"
                ) from e
            logger.info(f"Subscribed to {self.config.topic}")

            consumer = asyncio.create_task(self.consume(client, handler))
            stopper = asyncio.create_task(shutdown_event.wait())
            await asyncio.wait({consumer, stopper}, return_when=asyncio.FIRST_COMPLETED)

            if consumer.done():
                stopper.cancel()
                error = consumer.exception()
                if error is not None:
                    raise BrokerError(f"lost connection to {self.config.url}: {error}") from error
                return

            logger.info("Cleaning up")
            consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await consumer

            try:
                await self.unsubscribe(client)
            except BrokerUnsubscribeFailed as e:
                logger.error(str(e))

            await self.drain(grace)
        finally:
            try:
                await stack.aclose()
            except aiomqtt.MqttError as e:
                logger.warning(f"Error disconnecting from {self.config.url}: {e}")
