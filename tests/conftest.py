from unittest.mock import AsyncMock, MagicMock

import pytest

from sense_bridge.common.config import (
    BridgeConfig,
    BrokerConfig,
    IngressConfig,
    MetricsConfig,
    TransformConfig,
)
from sense_bridge.common.models import Credential, CredentialSource, InboundMessage


def make_mock_session(status=204, text="", post_side_effect=None):
    """Build a stand-in for aiohttp.ClientSession returning one canned response."""
    mock_response = MagicMock()
    mock_response.status = status
    mock_response.text = AsyncMock(return_value=text)

    cm = MagicMock()
    cm.__aenter__ = AsyncMock(return_value=mock_response)
    cm.__aexit__ = AsyncMock(return_value=None)

    mock_session = MagicMock()
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    if post_side_effect is not None:
        mock_session.post.side_effect = post_side_effect
    else:
        mock_session.post.return_value = cm
    return mock_session


@pytest.fixture
def mock_session_factory():
    """Fixture that provides the mock aiohttp session builder."""
    return make_mock_session


@pytest.fixture
def ingress_config():
    """Fixture that provides a sample ingestion endpoint configuration."""
    return IngressConfig(
        address="http://ingress.example.com",
        api_key="K1",
        accepted_status=204,
        timeout=5,
    )


@pytest.fixture
def broker_config():
    """Fixture that provides a sample broker configuration."""
    return BrokerConfig(
        host="broker.example.com",
        port=1883,
        topic="sensors/readings",
    )


@pytest.fixture
def bridge_config(broker_config, ingress_config, tmp_path):
    """Fixture that provides a complete bridge configuration."""
    return BridgeConfig(
        log_level="INFO",
        broker=broker_config,
        ingress=ingress_config,
        transform=TransformConfig(),
        metrics=MetricsConfig(enabled=False),
        credential_file=tmp_path / "mqtt-client-jwt",
    )


@pytest.fixture
def credential():
    return Credential(value="T1", source=CredentialSource.STORED)


@pytest.fixture
def datum_message():
    """A Node-RED style reading."""
    return InboundMessage(
        topic="sensors/readings",
        payload=b'{"datum":[1000,42.5]}',
    )


@pytest.fixture
def plain_message():
    return InboundMessage(
        topic="sensors/readings",
        payload=b'{"sensor":"t1","reading":21.5}',
    )
