from pathlib import Path
from typing import Optional, Union

from loguru import logger

from sense_bridge.common.config import DeviceConfig, IngressConfig
from sense_bridge.common.models import Credential
from sense_bridge.credentials.registration import register
from sense_bridge.credentials.store import load_credential, persist_credential


async def acquire_credential(
    ingress: IngressConfig,
    path: Union[str, Path],
    device: Optional[DeviceConfig] = None,
    force: bool = False,
) -> Credential:
    """Return a usable credential, registering only when needed.

    A stored credential is reused unless ``force`` is set. A fresh one is
    persisted right away; RegistrationFailed propagates to the caller.
    """
    credential = None
    if force:
        logger.info("Registration forced, ignoring any stored credential")
    else:
        credential = load_credential(path)

    if credential is not None:
        return credential

    logger.info("Doing registration (no stored credential or registration forced)")
    credential = await register(
        ingress.address,
        ingress.api_key,
        device=device,
        timeout=ingress.timeout,
    )
    persist_credential(credential, path)
    return credential
