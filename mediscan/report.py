"""
Plain-text report for an analyzed scan.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from mediscan.db import ScanRecord
from mediscan.types import ScanStatus

DISCLAIMER = (
    "DISCLAIMER: This report was produced by an automated image analysis "
    "system for informational purposes only. It is not a medical diagnosis and "
    "does not replace the judgement of a qualified healthcare professional. "
    "Consult your physician before starting, stopping or changing any treatment."
)


def _bullets(items: Optional[Iterable[str]], empty: str = "None") -> List[str]:
    lines = [f"- {item}" for item in items or []]
    return lines or [f"- {empty}"]


def _section(title: str) -> List[str]:
    return ["", title, "-" * len(title)]


def build_report(
    scan: ScanRecord, patient_name: str, generated_at: Optional[datetime] = None
) -> str:
    if scan.status != ScanStatus.ANALYZED:
        raise ValueError("Reports are only available for analyzed scans")
    generated_at = generated_at or datetime.now(timezone.utc)
    prescription = scan.prescription or {}
    confidence = f"{scan.confidence:g}%" if scan.confidence is not None else "n/a"

    header = "MEDICAL IMAGE ANALYSIS REPORT"
    lines = [
        header,
        "=" * len(header),
        "",
        f"Patient: {patient_name}",
        f"Report generated: {generated_at.strftime('%Y-%m-%d %H:%M UTC')}",
    ]

    lines += _section("SCAN DETAILS")
    lines += [
        f"Scan name: {scan.name}",
        f"Scan type: {scan.type}",
        f"File: {scan.file_name}",
        f"Upload date: {scan.upload_date}",
        f"Status: {ScanStatus(scan.status).value}",
    ]

    lines += _section("DIAGNOSIS")
    lines += [
        f"Diagnosis: {scan.diagnosis}",
        f"Confidence: {confidence}",
        f"Severity: {scan.severity}",
    ]

    lines += _section("FINDINGS")
    lines += _bullets(scan.findings)

    lines += _section("RECOMMENDATIONS")
    lines += _bullets(scan.recommendations)

    lines += _section("PRESCRIPTION")
    lines.append("Medications:")
    lines += _bullets(
        [
            f"{med.get('name')} - {med.get('dosage')} - {med.get('frequency')}"
            for med in prescription.get("medications") or []
        ],
        empty="No medications prescribed",
    )
    lines.append("Lifestyle:")
    lines += _bullets(prescription.get("lifestyle"))
    lines.append(f"Follow-up: {prescription.get('follow_up') or 'As scheduled'}")
    lines.append("Warnings:")
    lines += _bullets(prescription.get("warnings"))

    lines += ["", DISCLAIMER, ""]
    return "\n".join(lines)
