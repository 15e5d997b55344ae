# =============================================================================
# PME Notify -- Frame Parser
# =============================================================================
#
# Incoming (server -> client):
#   Text frames holding one or more JSON documents separated by newlines.
#   The hub drains its whole send queue into a single frame when it can.
#
#   {"type":"recovery_start", "requested_seq":0, "count":12, ...}
#   {"seq":17, "event_type":"order_ack", "data":{...}}
#   {"type":"recovery_complete", "count":12, "latest_seq":28}
#   {"type":"buffer_info", "size":28, "capacity":1000, ...}
#
# Outgoing (client -> server):
#   {"type":"subscribe","from_seq":N}
# =============================================================================

from __future__ import annotations

import json
from typing import Any

from ._logging import logger
from .constants import (
    MAX_FRAME_SIZE,
    MSG_BUFFER_INFO,
    MSG_RECOVERY_COMPLETE,
    MSG_RECOVERY_START,
    MSG_SUBSCRIBE,
)
from .errors import NotifyProtocolError
from .types import (
    BufferInfo,
    ControlMessage,
    RecoveryComplete,
    RecoveryStart,
    SequencedEvent,
)

try:
    import orjson

    def _json_loads(data: str | bytes) -> Any:
        return orjson.loads(data)

    def _json_dumps(obj: Any) -> str:
        return orjson.dumps(obj).decode()

except ImportError:

    def _json_loads(data: str | bytes) -> Any:
        return json.loads(data)

    def _json_dumps(obj: Any) -> str:
        return json.dumps(obj, separators=(",", ":"))


Unit = SequencedEvent | ControlMessage


def encode_subscribe(from_seq: int) -> str:
    """Render the one subscribe request sent after every open."""
    if from_seq < 0:
        raise ValueError(f"from_seq must be >= 0, got {from_seq}")
    return _json_dumps({"type": MSG_SUBSCRIBE, "from_seq": from_seq})


def _is_seq(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _opt_int(parsed: dict[str, Any], key: str) -> int | None:
    value = parsed.get(key)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _opt_bool(parsed: dict[str, Any], key: str) -> bool | None:
    value = parsed.get(key)
    return value if isinstance(value, bool) else None


class FrameParser:
    """Split a raw frame into message units and classify each one.

    A line that fails to decode is logged and dropped; the other lines
    of the same frame are still returned, in frame order.

    Args:
        max_frame_size: Frames larger than this (in characters or bytes)
            are dropped whole.
    """

    def __init__(self, max_frame_size: int = MAX_FRAME_SIZE) -> None:
        self._max_frame_size = max_frame_size
        self._frames = 0
        self._units = 0
        self._decode_errors = 0
        self._unrecognized = 0

    def parse(self, frame: str | bytes) -> list[Unit]:
        """Decode every non-blank line of *frame* into a unit."""
        self._frames += 1
        if len(frame) > self._max_frame_size:
            logger.warning("Frame exceeds max size (%d), dropping", len(frame))
            return []

        if isinstance(frame, bytes):
            try:
                frame = frame.decode("utf-8")
            except UnicodeDecodeError as exc:
                self._decode_errors += 1
                logger.warning("Failed to decode binary frame: %s", exc)
                return []

        units: list[Unit] = []
        for line in frame.split("\n"):
            if not line.strip():
                continue
            try:
                parsed = self.decode_line(line)
            except NotifyProtocolError as exc:
                self._decode_errors += 1
                logger.warning("Failed to decode notification: %s (line=%.200s)", exc, exc.line)
                continue

            unit = self.classify(parsed)
            if unit is None:
                self._unrecognized += 1
                logger.warning("Unknown message shape: %.200s", line)
                continue
            self._units += 1
            units.append(unit)
        return units

    def decode_line(self, line: str) -> dict[str, Any]:
        """Decode one JSON document. Raises :class:`NotifyProtocolError`."""
        try:
            parsed = _json_loads(line)
        except ValueError as exc:
            raise NotifyProtocolError(f"invalid JSON: {exc}", line) from exc
        if not isinstance(parsed, dict):
            raise NotifyProtocolError(
                f"expected a JSON object, got {type(parsed).__name__}", line
            )
        return parsed

    def classify(self, parsed: dict[str, Any]) -> Unit | None:
        """Map a decoded document to a control message or sequenced event."""
        msg_type = parsed.get("type")

        if msg_type == MSG_RECOVERY_START:
            return RecoveryStart(
                requested_seq=_opt_int(parsed, "requested_seq"),
                oldest_seq=_opt_int(parsed, "oldest_seq"),
                latest_seq=_opt_int(parsed, "latest_seq"),
                count=_opt_int(parsed, "count"),
                all_available=_opt_bool(parsed, "all_available"),
                raw=parsed,
            )
        if msg_type == MSG_RECOVERY_COMPLETE:
            return RecoveryComplete(
                count=_opt_int(parsed, "count"),
                latest_seq=_opt_int(parsed, "latest_seq"),
                raw=parsed,
            )
        if msg_type == MSG_BUFFER_INFO:
            return BufferInfo(
                size=_opt_int(parsed, "size"),
                capacity=_opt_int(parsed, "capacity"),
                oldest_seq=_opt_int(parsed, "oldest_seq"),
                latest_seq=_opt_int(parsed, "latest_seq"),
                raw=parsed,
            )

        seq = parsed.get("seq")
        if not _is_seq(seq):
            return None

        event_type = parsed.get("event_type") or msg_type or "unknown"
        data = parsed.get("data")
        if data is None:
            data = {}
        elif not isinstance(data, dict):
            data = {"value": data}
        return SequencedEvent(seq=seq, event_type=str(event_type), data=data)

    def get_stats(self) -> dict:
        return {
            "frames": self._frames,
            "units": self._units,
            "decode_errors": self._decode_errors,
            "unrecognized": self._unrecognized,
        }

    def reset(self) -> None:
        self._frames = 0
        self._units = 0
        self._decode_errors = 0
        self._unrecognized = 0
