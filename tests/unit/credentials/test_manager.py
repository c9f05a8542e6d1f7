from unittest.mock import AsyncMock, patch

import pytest
from aiohttp import test_utils, web

from sense_bridge.common.config import DeviceConfig
from sense_bridge.common.errors import RegistrationFailed
from sense_bridge.common.models import Credential, CredentialSource
from sense_bridge.credentials.manager import acquire_credential


ISSUED = Credential(value="T1", source=CredentialSource.ISSUED)


class TestAcquireCredential:

    @pytest.mark.asyncio
    async def test_reuses_stored_credential(self, ingress_config, tmp_path):
        """Given a readable stored credential and no force flag, register is never called."""
        path = tmp_path / "mqtt-client-jwt"
        path.write_text("STORED")

        with patch(
            "sense_bridge.credentials.manager.register", AsyncMock(return_value=ISSUED)
        ) as mock_register:
            credential = await acquire_credential(ingress_config, path)

        mock_register.assert_not_called()
        assert credential.value == "STORED"
        assert credential.source == CredentialSource.STORED
        assert path.read_text() == "STORED"

    @pytest.mark.asyncio
    async def test_registers_without_stored_credential(self, ingress_config, tmp_path):
        path = tmp_path / "mqtt-client-jwt"

        with patch(
            "sense_bridge.credentials.manager.register", AsyncMock(return_value=ISSUED)
        ) as mock_register:
            credential = await acquire_credential(ingress_config, path)

        mock_register.assert_called_once_with(
            ingress_config.address,
            ingress_config.api_key,
            device=None,
            timeout=ingress_config.timeout,
        )
        assert credential == ISSUED
        assert path.read_text() == "T1"

    @pytest.mark.asyncio
    async def test_forced_registration_overwrites_stored(self, ingress_config, tmp_path):
        """Given the force flag, register always runs and its result replaces the stored one."""
        path = tmp_path / "mqtt-client-jwt"
        path.write_text("STORED")
        device = DeviceConfig(model="Gateway-2")

        with patch(
            "sense_bridge.credentials.manager.register", AsyncMock(return_value=ISSUED)
        ) as mock_register:
            credential = await acquire_credential(
                ingress_config, path, device=device, force=True
            )

        mock_register.assert_called_once()
        assert mock_register.call_args[1]["device"] == device
        assert credential.value == "T1"
        assert path.read_text() == "T1"

    @pytest.mark.asyncio
    async def test_registration_failure_propagates(self, ingress_config, tmp_path):
        path = tmp_path / "mqtt-client-jwt"

        with patch(
            "sense_bridge.credentials.manager.register",
            AsyncMock(side_effect=RegistrationFailed("unable to do registration")),
        ):
            with pytest.raises(RegistrationFailed):
                await acquire_credential(ingress_config, path)

        assert not path.exists()

    @pytest.mark.asyncio
    async def test_persist_failure_keeps_credential(self, ingress_config, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        path = blocker / "mqtt-client-jwt"

        with patch(
            "sense_bridge.credentials.manager.register", AsyncMock(return_value=ISSUED)
        ):
            credential = await acquire_credential(ingress_config, path)

        assert credential.value == "T1"

    @pytest.mark.asyncio
    async def test_registration_handshake_end_to_end(self, ingress_config, tmp_path):
        async def handler(request):
            body = await request.json()
            assert body["apiKey"] == "K1"
            return web.json_response({"token": "T1"})

        app = web.Application()
        app.router.add_post("/v1/registration", handler)
        path = tmp_path / "mqtt-client-jwt"

        async with test_utils.TestServer(app) as server:
            ingress_config.address = f"http://{server.host}:{server.port}"
            credential = await acquire_credential(ingress_config, path)

        assert credential.value == "T1"
        assert path.read_text() == "T1"
