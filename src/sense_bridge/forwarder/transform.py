import json
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from sense_bridge.common.config import TimestampFormat, TransformConfig
from sense_bridge.common.errors import FieldCollision, MalformedDatum, MalformedPayload


DATUM_FIELD = "datum"


def epoch_millis_to_iso8601(millis: float) -> str:
    """Render epoch milliseconds as an ISO-8601 UTC timestamp.

    Whole seconds are floored; the sub-second remainder goes through
    nanoseconds and is truncated to microseconds.
    """
    seconds = math.floor(millis / 1000)
    nanoseconds = int((millis - seconds * 1000) * 1_000_000)
    moment = datetime.fromtimestamp(seconds, tz=timezone.utc) + timedelta(
        microseconds=nanoseconds // 1000
    )
    return moment.isoformat(timespec="microseconds").replace("+00:00", "Z")


def _decode_object(payload: bytes) -> Dict[str, Any]:
    try:
        data = json.loads(payload)
    except (ValueError, UnicodeDecodeError, RecursionError):
        raise MalformedPayload(payload, "unable to unmarshal payload")
    if not isinstance(data, dict):
        raise MalformedPayload(payload, f"payload is a JSON {type(data).__name__}, not an object")
    return data


def _read_datum(payload: bytes, datum: Any) -> Tuple[Any, Any]:
    if not isinstance(datum, list) or len(datum) != 2:
        raise MalformedDatum(payload, "datum field is not a [timestamp, value] pair")
    return datum[0], datum[1]


def _render_timestamp(payload: bytes, raw: Any, timestamp_format: TimestampFormat) -> Any:
    if timestamp_format == TimestampFormat.RAW:
        return raw

    # bool is an int subclass but never a valid epoch value
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise MalformedDatum(payload, f"datum timestamp is not a number: {raw!r}")
    try:
        return epoch_millis_to_iso8601(raw)
    except (OverflowError, OSError, ValueError) as e:
        raise MalformedDatum(payload, f"datum timestamp out of range: {raw!r} ({e})")


def transform(payload: bytes, policy: Optional[TransformConfig] = None) -> bytes:
    """Lift the ``datum`` pair of a message into top-level fields.

    Payloads without ``datum`` come back as-is. On failure a TransformError
    is raised; it carries the untouched payload.
    """
    policy = policy or TransformConfig()
    data = _decode_object(payload)

    if DATUM_FIELD not in data:
        return payload

    for field in policy.guarded_fields():
        if field in data:
            raise FieldCollision(payload, field)

    raw_timestamp, raw_value = _read_datum(payload, data[DATUM_FIELD])
    data[policy.timestamp_field] = _render_timestamp(
        payload, raw_timestamp, policy.timestamp_format
    )
    data[policy.value_field] = raw_value

    try:
        encoded = json.dumps(data, separators=(",", ":"))
    except (ValueError, RecursionError):
        raise MalformedPayload(payload, "unable to marshal transformed payload")
    return encoded.encode("utf-8")
