"""
Wire envelope for watch/phone messages.

Every message is a flat dict with a ``type`` discriminator. Record payloads
travel JSON-encoded under ``data`` so the native peer can decode them with
its own JSON decoder:

    {"type": "liveMetrics", "data": "{\\"heartRate\\": 152, ...}"}
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError

from ..exceptions import SyncEncodingError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class MessageType(str, Enum):
    """Wire ``type`` strings; shared with the native peer, do not rename."""

    # watch -> phone
    LIVE_METRICS = "liveMetrics"
    SEGMENT_COMPLETE = "segmentComplete"
    WORKOUT_SUMMARY = "workoutSummary"
    HEART_RATE_ALERT = "heartRateAlert"
    QUEUED_METRICS = "queuedMetrics"

    # phone -> watch
    WORKOUT = "workout"
    WORKOUT_START = "workoutStart"
    WORKOUT_PAUSE = "workoutPause"
    WORKOUT_RESUME = "workoutResume"
    WORKOUT_STOP = "workoutStop"
    SETTINGS = "settings"
    USER_ID = "userId"


COMMAND_TYPES = frozenset({
    MessageType.WORKOUT_START,
    MessageType.WORKOUT_PAUSE,
    MessageType.WORKOUT_RESUME,
    MessageType.WORKOUT_STOP,
})


def _dump(record: Any) -> Any:
    if isinstance(record, BaseModel):
        return record.model_dump(mode="json", by_alias=True)
    if isinstance(record, (list, tuple)):
        return [_dump(item) for item in record]
    return record


def encode_message(
    msg_type: Union[MessageType, str],
    record: Any = None,
    **extra: Any,
) -> Dict[str, Any]:
    """
    Build an outbound envelope.

    Args:
        msg_type: Message discriminator
        record: Optional payload (pydantic model, list of models, or plain
            JSON-compatible value), JSON-encoded under "data"
        **extra: Additional top-level keys (e.g. count, timestamp)

    Returns:
        Envelope dict

    Raises:
        SyncEncodingError: If the type is unknown or the payload is not
            JSON serializable
    """
    try:
        kind = MessageType(msg_type)
    except ValueError:
        raise SyncEncodingError(str(msg_type), "unknown message type")

    envelope: Dict[str, Any] = {"type": kind.value}
    try:
        if record is not None:
            envelope["data"] = json.dumps(_dump(record), allow_nan=False)
        for key, value in extra.items():
            envelope[key] = _dump(value)
        # Extras are sent as-is; make sure they survive a JSON round trip
        json.dumps(envelope, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise SyncEncodingError(kind.value, str(e)) from e

    return envelope


def message_type(payload: Mapping[str, Any]) -> Optional[MessageType]:
    """Read the discriminator; None when missing or unknown."""
    raw = payload.get("type") if isinstance(payload, Mapping) else None
    if not isinstance(raw, str):
        return None
    try:
        return MessageType(raw)
    except ValueError:
        return None


def decode_data(payload: Mapping[str, Any]) -> Any:
    """JSON-decode the ``data`` field (a str, or an already-decoded value)."""
    data = payload.get("data")
    if isinstance(data, (bytes, bytearray)):
        data = data.decode("utf-8")
    if isinstance(data, str):
        return json.loads(data)
    return data


def decode_record(payload: Mapping[str, Any], model: Type[M]) -> M:
    """Decode ``data`` into a model.

    Raises:
        ValueError: If data is missing, not JSON, or fails validation
    """
    try:
        return model.model_validate(decode_data(payload))
    except PydanticValidationError as e:
        raise ValueError(f"Invalid {model.__name__} payload: {e}") from e
