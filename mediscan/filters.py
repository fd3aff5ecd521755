"""
In-memory filtering for the scans list.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from mediscan.db import ScanRecord

ALL = "all"


def _is_unset(value: Optional[str]) -> bool:
    return value is None or value == "" or value.lower() == ALL


def filter_scans(
    scans: Iterable[ScanRecord],
    search: Optional[str] = None,
    scan_type: Optional[str] = None,
    status: Optional[str] = None,
) -> List[ScanRecord]:
    """
    Conjunctive filter: case-insensitive substring over name and diagnosis,
    exact type, case-insensitive status. Unset filters (None, "" or "all")
    match everything. Input order is preserved.
    """
    needle = (search or "").lower()
    results = []
    for scan in scans:
        if needle and needle not in (scan.name or "").lower() and needle not in (
            scan.diagnosis or ""
        ).lower():
            continue
        if not _is_unset(scan_type) and scan.type != scan_type:
            continue
        if not _is_unset(status) and str(scan.status).lower() != status.lower():
            continue
        results.append(scan)
    return results
