"""Bridge from an MQTT topic to the Sense ingestion API."""

__version__ = "1.0.0"
