from datetime import datetime, timezone
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialSource(str, Enum):
    ISSUED = "issued"
    STORED = "stored"


class Credential(BaseModel):
    model_config = ConfigDict(frozen=True)

    # kept out of repr so the token never reaches the logs
    value: str = Field(repr=False)
    source: CredentialSource


class DeviceProperties(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    timestamp: int
    manufacturer: str
    model: str
    os: str
    os_version: str = Field(alias="osVersion")
    software_version: str = Field(alias="softwareVersion")
    type: str
    sensors: List[str] = Field(default_factory=list)


class RegistrationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_key: str = Field(alias="apiKey")
    properties: DeviceProperties


class RegistrationResponse(BaseModel):
    # Server-assigned identifiers come back alongside the token; only the
    # token is kept.
    model_config = ConfigDict(extra="allow")

    token: str = ""


class InboundMessage(BaseModel):
    topic: str
    payload: bytes
    received_at: datetime = Field(default_factory=_utcnow)
