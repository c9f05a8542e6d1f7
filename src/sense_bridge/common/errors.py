from typing import Optional


class BridgeError(Exception):
    """Base class for all errors raised by the bridge."""


class ConfigMissing(BridgeError, ValueError):
    def __init__(self, setting: str, description: str = ""):
        self.setting = setting
        if description:
            super().__init__(f"no {description} specified ({setting})")
        else:
            super().__init__(f"missing required setting: {setting}")


class RegistrationFailed(BridgeError):
    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class CredentialPersistFailed(BridgeError):
    pass


class TransformError(BridgeError):
    """A payload could not be transformed.

    The untouched payload travels with the error so the caller can still
    forward it.
    """

    reason = "transform_error"

    def __init__(self, payload: bytes, message: str):
        self.payload = payload
        super().__init__(message)


class MalformedPayload(TransformError):
    reason = "malformed_payload"


class MalformedDatum(TransformError):
    reason = "malformed_datum"


class FieldCollision(TransformError):
    reason = "field_collision"

    def __init__(self, payload: bytes, field: str):
        self.field = field
        super().__init__(payload, f"{field} field already present")


class ForwardFailed(BridgeError):
    pass


class BrokerError(BridgeError):
    pass


class BrokerConnectFailed(BrokerError):
    pass


class BrokerSubscribeFailed(BrokerError):
    pass


class BrokerUnsubscribeFailed(BrokerError):
    pass
