"""
Dashboard statistics derived from a user's scans.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Dict, Iterable, List, Optional

from mediscan.db import ScanRecord
from mediscan.types import ScanStatus

RECENT_ACTIVITY_LIMIT = 5


@dataclass
class ActivityItem:
    date: str
    action: str
    scan_name: str


@dataclass
class UserStats:
    total_scans: int = 0
    analyzed_scans: int = 0
    pending_scans: int = 0
    average_confidence: float = 0.0
    last_scan_date: Optional[str] = None
    scans_by_type: Dict[str, int] = field(default_factory=dict)
    recent_activity: List[ActivityItem] = field(default_factory=list)

    def as_dict(self) -> dict:
        return asdict(self)


def activity_label(status: ScanStatus | str) -> str:
    if status == ScanStatus.ANALYZED:
        return "Analyzed"
    if status == ScanStatus.ANALYZING:
        return "Analyzing"
    return "Uploaded"


def _round_one_decimal(value: float) -> float:
    # Half-up, the way a dashboard rounds; round() would use banker's rounding.
    return math.floor(value * 10 + 0.5) / 10


def compute_user_stats(scans: Iterable[ScanRecord]) -> UserStats:
    """
    Aggregate a user's scans. `scans` is expected newest first, as returned by
    the data access layer.
    """
    scans = list(scans)
    analyzed = [s for s in scans if s.status == ScanStatus.ANALYZED]
    pending = [
        s for s in scans if s.status in (ScanStatus.PENDING, ScanStatus.ANALYZING)
    ]

    average = 0.0
    if analyzed:
        average = sum(s.confidence or 0 for s in analyzed) / len(analyzed)

    by_type: Dict[str, int] = {}
    for scan in scans:
        by_type[scan.type] = by_type.get(scan.type, 0) + 1

    return UserStats(
        total_scans=len(scans),
        analyzed_scans=len(analyzed),
        pending_scans=len(pending),
        average_confidence=_round_one_decimal(average),
        last_scan_date=scans[0].upload_date if scans else None,
        scans_by_type=by_type,
        recent_activity=[
            ActivityItem(
                date=scan.upload_date,
                action=activity_label(scan.status),
                scan_name=scan.name,
            )
            for scan in scans[:RECENT_ACTIVITY_LIMIT]
        ],
    )
