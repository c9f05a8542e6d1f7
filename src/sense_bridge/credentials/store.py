from pathlib import Path
from typing import Optional, Union

from loguru import logger

from sense_bridge.common.errors import CredentialPersistFailed
from sense_bridge.common.models import Credential, CredentialSource


def load_credential(path: Union[str, Path]) -> Optional[Credential]:
    """Read a previously stored credential.

    A missing, unreadable or empty file yields None; on a first run that is
    the normal case and it leads to a registration.
    """
    path = Path(path)
    try:
        token = path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as e:
        logger.info(f"No stored credential at {path}: {e}")
        return None

    if not token:
        logger.warning(f"Credential file {path} is empty")
        return None

    logger.info(f"Got credential from {path}")
    return Credential(value=token, source=CredentialSource.STORED)


def write_credential(credential: Credential, path: Union[str, Path]) -> None:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(credential.value, encoding="utf-8")
        path.chmod(0o600)
    except OSError as e:
        raise CredentialPersistFailed(f"unable to write credential to {path}: {e}") from e


def persist_credential(credential: Credential, path: Union[str, Path]) -> bool:
    """Store the credential for the next start, replacing any previous one.

    Failing to store is not fatal: the credential stays usable for the
    lifetime of this process.
    """
    try:
        write_credential(credential, path)
    except CredentialPersistFailed as e:
        logger.error(str(e))
        return False

    logger.info(f"Wrote credential to {path}")
    return True
