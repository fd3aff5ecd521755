import unittest
from datetime import datetime, timezone

from mediscan.db import ScanRecord
from mediscan.report import DISCLAIMER, build_report
from mediscan.types import ScanStatus


class BuildReportTests(unittest.TestCase):
    def setUp(self):
        self.scan = ScanRecord(
            id="scan-1",
            user_id="user-1",
            name="Chest X-Ray - chest.jpg",
            type="Chest X-Ray",
            file_name="chest.jpg",
            file_size=2048,
            upload_date="2024-03-01T10:00:00.000000+00:00",
            status=ScanStatus.ANALYZED,
            diagnosis="Pneumonia detected in right lower lobe",
            confidence=87.3,
            severity="Moderate",
            findings=["Consolidation in right lower lobe"],
            recommendations=["Antibiotic therapy recommended"],
            prescription={
                "medications": [
                    {"name": "Amoxicillin", "dosage": "875mg", "frequency": "Twice daily"}
                ],
                "lifestyle": ["Rest"],
                "follow_up": "Chest X-ray in 7-10 days",
                "warnings": [],
            },
        )

    def test_sections_in_order(self):
        report = build_report(
            self.scan, "Jamie Doe", generated_at=datetime(2024, 3, 2, 9, 30, tzinfo=timezone.utc)
        )
        positions = [
            report.index(title)
            for title in (
                "MEDICAL IMAGE ANALYSIS REPORT",
                "SCAN DETAILS",
                "DIAGNOSIS",
                "FINDINGS",
                "RECOMMENDATIONS",
                "PRESCRIPTION",
                DISCLAIMER,
            )
        ]
        self.assertEqual(positions, sorted(positions))
        self.assertIn("Patient: Jamie Doe", report)
        self.assertIn("Report generated: 2024-03-02 09:30 UTC", report)
        self.assertIn("Confidence: 87.3%", report)
        self.assertIn("- Amoxicillin - 875mg - Twice daily", report)
        self.assertIn("Follow-up: Chest X-ray in 7-10 days", report)
        self.assertTrue(report.rstrip().endswith(DISCLAIMER))

    def test_empty_lists_render_placeholder(self):
        report = build_report(self.scan, "Jamie Doe")
        warnings = report.split("Warnings:")[1]
        self.assertTrue(warnings.lstrip().startswith("- None"))

    def test_refuses_unanalyzed_scan(self):
        self.scan.status = ScanStatus.ANALYZING
        with self.assertRaises(ValueError):
            build_report(self.scan, "Jamie Doe")


if __name__ == "__main__":
    unittest.main()
