"""
Event identity keys for change-feed deduplication.

A key is ``table:operation:id:timestamp:digest``. The timestamp comes from
``updated_at``, then ``created_at``, then the arrival time of the event.
The arrival-time fallback means a redelivered row that carries neither
column can produce a different key, so dedup is weaker for such rows.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Tuple

from shared.models import ChangeEvent, ChangeOperation, TrackedTable
from shared.utils import calculate_hash, utc_now

logger = logging.getLogger(__name__)

DIGEST_LENGTH = 16

# Columns whose values distinguish one UPDATE of a row from another
RELEVANT_FIELDS: Dict[TrackedTable, Tuple[str, ...]] = {
    TrackedTable.USERS: (
        "amount_deposited",
        "total_pnl",
        "total_volume",
        "txns_executed",
        "is_copytrading_enabled",
        "fees_total",
    ),
    TrackedTable.AUTO_TRADE: ("status",),
    TrackedTable.COPY_WALLETS: ("is_enabled", "percent_ratio"),
}


def _component(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def extract_primary_key(
    after: Optional[Mapping[str, Any]], before: Optional[Mapping[str, Any]]
) -> str:
    """Row id from the new image, falling back to the old one."""
    if after and after.get("id") is not None:
        return _component(after.get("id"))
    if before and before.get("id") is not None:
        return _component(before.get("id"))
    return ""


def extract_timestamp(
    after: Optional[Mapping[str, Any]], received_at: Optional[datetime] = None
) -> str:
    """Event time from the row, or the arrival time truncated to seconds."""
    after = after or {}
    for column in ("updated_at", "created_at"):
        if after.get(column):
            return _component(after[column])
    if received_at is None:
        return ""
    return received_at.replace(microsecond=0).isoformat()


def relevant_digest(
    table: TrackedTable,
    operation: ChangeOperation,
    after: Optional[Mapping[str, Any]],
) -> str:
    """Short token over the relevant columns; empty for INSERTs."""
    fields = RELEVANT_FIELDS.get(table)
    if operation != ChangeOperation.UPDATE or not fields:
        return ""
    after = after or {}
    joined = "|".join(_component(after.get(field)) for field in fields)
    return calculate_hash(joined)[:DIGEST_LENGTH]


def build_key(
    table: TrackedTable,
    operation: ChangeOperation,
    before: Optional[Mapping[str, Any]],
    after: Optional[Mapping[str, Any]],
    received_at: Optional[datetime] = None,
) -> str:
    """
    Derive the identity of a change event.

    Missing columns become empty components; this never raises.

    Args:
        table: Source relation
        operation: INSERT or UPDATE
        before: Prior row image, possibly partial
        after: New row image
        received_at: Arrival time, used when the row carries no timestamp;
            defaults to now

    Returns:
        Key string, identical for identical compositions
    """
    parts = [
        table.value,
        operation.value,
        extract_primary_key(after, before),
        extract_timestamp(after, received_at or utc_now()),
        relevant_digest(table, operation, after),
    ]
    return ":".join(parts)


def key_for_event(event: ChangeEvent) -> str:
    return build_key(
        event.table, event.operation, event.before, event.after, event.received_at
    )
