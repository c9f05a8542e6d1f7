import asyncio
import time
from typing import Optional

import aiohttp
from loguru import logger
from pydantic import ValidationError

from sense_bridge.common.config import DeviceConfig
from sense_bridge.common.errors import RegistrationFailed
from sense_bridge.common.metrics import metrics
from sense_bridge.common.models import (
    Credential,
    CredentialSource,
    DeviceProperties,
    RegistrationRequest,
    RegistrationResponse,
)


REGISTRATION_OK = 200


def build_registration_request(
    api_key: str, device: Optional[DeviceConfig] = None
) -> RegistrationRequest:
    """Describe this client to the registration endpoint."""
    device = device or DeviceConfig()
    return RegistrationRequest(
        api_key=api_key,
        properties=DeviceProperties(
            timestamp=int(time.time()),
            manufacturer=device.manufacturer,
            model=device.model,
            os=device.os,
            os_version=device.os_version,
            software_version=device.software_version,
            type=device.type,
            sensors=list(device.sensors),
        ),
    )


async def register(
    address: str,
    api_key: str,
    device: Optional[DeviceConfig] = None,
    timeout: float = 10.0,
) -> Credential:
    """Exchange the API key for a bearer credential.

    Raises RegistrationFailed on a transport error, on any status other than
    200, or when the response carries no token.
    """
    url = f"{address.rstrip('/')}/v1/registration"
    request = build_registration_request(api_key, device)
    logger.info(f"Registering with {url} (device={request.properties.model_dump(by_alias=True)})")

    try:
        async with aiohttp.ClientSession() as session:
            async with session.post(
                url,
                json=request.model_dump(by_alias=True),
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                status = response.status
                body = await response.text()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        metrics.registration_total.labels(outcome="error").inc()
        raise RegistrationFailed(f"unable to do registration: {e!r}") from e

    if status != REGISTRATION_OK:
        metrics.registration_total.labels(outcome="rejected").inc()
        raise RegistrationFailed(
            f"unable to do registration (status={status}): {body}",
            status_code=status,
            body=body,
        )

    try:
        parsed = RegistrationResponse.model_validate_json(body)
    except ValidationError as e:
        metrics.registration_total.labels(outcome="invalid").inc()
        raise RegistrationFailed(
            f"unable to parse registration response: {e}", status_code=status, body=body
        ) from e

    if not parsed.token:
        metrics.registration_total.labels(outcome="invalid").inc()
        raise RegistrationFailed(
            "registration response carries no token", status_code=status, body=body
        )

    metrics.registration_total.labels(outcome="success").inc()
    logger.info("Registration succeeded")
    return Credential(value=parsed.token, source=CredentialSource.ISSUED)
