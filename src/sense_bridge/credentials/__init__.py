"""Acquisition and storage of the ingestion bearer credential."""

from sense_bridge.credentials.manager import acquire_credential
from sense_bridge.credentials.registration import build_registration_request, register
from sense_bridge.credentials.store import (
    load_credential,
    persist_credential,
    write_credential,
)

__all__ = [
    "acquire_credential",
    "build_registration_request",
    "register",
    "load_credential",
    "persist_credential",
    "write_credential",
]
