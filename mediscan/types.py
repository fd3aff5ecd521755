"""
Shared enums and small helpers.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum


class ScanStatus(StrEnum):
    PENDING = "pending"
    ANALYZING = "analyzing"
    ANALYZED = "analyzed"
    ERROR = "error"


_STATUS_ORDER = {
    ScanStatus.PENDING: 0,
    ScanStatus.ANALYZING: 1,
    ScanStatus.ANALYZED: 2,
}

TERMINAL_STATUSES = frozenset({ScanStatus.ANALYZED, ScanStatus.ERROR})

# Fields that only carry meaning once a scan has been analyzed.
RESULT_FIELDS = (
    "diagnosis",
    "confidence",
    "severity",
    "findings",
    "recommendations",
    "prescription",
)


def can_transition(current: ScanStatus | str, target: ScanStatus | str) -> bool:
    """
    Status moves forward along pending -> analyzing -> analyzed; error is
    reachable from any non-terminal status. Re-writing the same status is allowed.
    """
    current = ScanStatus(current)
    target = ScanStatus(target)
    if current == target:
        return True
    if current in TERMINAL_STATUSES:
        return False
    if target == ScanStatus.ERROR:
        return True
    return _STATUS_ORDER[target] > _STATUS_ORDER[current]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")
