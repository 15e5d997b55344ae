# =============================================================================
# PME Notify -- Display Helpers
# =============================================================================
#
# Compact one-line rendering used by the dashboard's notification panel:
#   #17 09:30:01.250 order ack | account_code:ACC01 | state:Open | ...
# =============================================================================

from __future__ import annotations

from datetime import datetime
from typing import Any

from .types import SequencedEvent

STATE_NAMES: dict[str, str] = {
    "S": "Submitted",
    "O": "Open",
    "P": "Partial",
    "M": "Matched",
    "W": "Withdrawn",
    "R": "Rejected",
    "G": "Pending",
    "E": "Approval",
    "C": "Closed",
    "T": "Terminated",
}

# Shown first, in this order; remaining fields follow in payload order.
PRIORITY_FIELDS: tuple[str, ...] = (
    "account_code",
    "order_nid",
    "trade_nid",
    "contract_nid",
    "instrument",
    "instrument_code",
    "side",
    "quantity",
    "state",
    "kpei_reff",
    "message",
)


def describe_state(code: Any) -> str:
    """Human-readable order/contract state, the raw code when unknown."""
    return STATE_NAMES.get(str(code), str(code))


def format_timestamp(value: Any = None) -> str:
    """``HH:MM:SS.mmm`` local time.

    Accepts epoch milliseconds, an ISO-8601 string, or ``None`` (now).
    Values that cannot be read fall back to the current time.
    """
    moment: datetime | None = None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            moment = datetime.fromtimestamp(value / 1000)
        except (OverflowError, OSError, ValueError):
            moment = None
    elif isinstance(value, str) and value:
        try:
            moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            moment = None
        if moment is not None and moment.tzinfo is not None:
            moment = moment.astimezone()
    if moment is None:
        moment = datetime.now()
    return moment.strftime("%H:%M:%S.") + f"{moment.microsecond // 1000:03d}"


def format_fields(data: dict[str, Any]) -> list[str]:
    fields: list[str] = []
    for key in PRIORITY_FIELDS:
        if key in data:
            value = describe_state(data[key]) if key == "state" else data[key]
            fields.append(f"{key}:{value}")
    for key, value in data.items():
        if key == "timestamp" or key in PRIORITY_FIELDS:
            continue
        fields.append(f"{key}:{value}")
    return fields


def format_event(event: SequencedEvent) -> str:
    ts = format_timestamp(event.data.get("timestamp"))
    label = event.event_type.replace("_", " ")
    return " | ".join([f"#{event.seq} {ts} {label}", *format_fields(event.data)])
