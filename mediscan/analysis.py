"""
Synthesized analysis outcomes.

No model runs here: each scan type maps to a static table of severity tiers,
each tier holding one or more canned result bundles. One weighted draw picks
the tier and a second draw picks the bundle. Swapping this module for a real
inference call leaves the workflow contract untouched.
"""

from __future__ import annotations

import json
import random
from dataclasses import dataclass, field
from functools import lru_cache
from importlib import resources
from typing import Dict, List, Optional

DEFAULT_SCAN_TYPE = "chest-xray"


@dataclass
class Outcome:
    diagnosis: str
    confidence: float
    severity: str
    findings: List[str]
    recommendations: List[str]
    prescription: dict
    tier: Optional[str] = None

    def as_updates(self) -> dict:
        """Columns written to the scan row when it is marked analyzed."""
        return {
            "diagnosis": self.diagnosis,
            "confidence": self.confidence,
            "severity": self.severity,
            "findings": list(self.findings),
            "recommendations": list(self.recommendations),
            "prescription": dict(self.prescription),
        }


@dataclass
class OutcomeTier:
    tier: str
    weight: float
    bundles: List[dict] = field(default_factory=list)


@dataclass
class ScanTypeTable:
    key: str
    label: str
    tiers: List[OutcomeTier]


def parse_outcome_table(raw: dict) -> Dict[str, ScanTypeTable]:
    tables: Dict[str, ScanTypeTable] = {}
    for key, entry in raw.items():
        tiers = [
            OutcomeTier(tier=t["tier"], weight=float(t["weight"]), bundles=list(t["bundles"]))
            for t in entry["tiers"]
        ]
        if not tiers or any(not t.bundles or t.weight < 0 for t in tiers):
            raise ValueError(f"Outcome table for {key} has an empty or negative tier")
        tables[key] = ScanTypeTable(key=key, label=entry["label"], tiers=tiers)
    return tables


@lru_cache(maxsize=1)
def load_outcome_table() -> Dict[str, ScanTypeTable]:
    text = resources.files("mediscan.data").joinpath("outcomes.json").read_text("utf-8")
    return parse_outcome_table(json.loads(text))


def scan_type_labels(table: Dict[str, ScanTypeTable] | None = None) -> Dict[str, str]:
    table = table if table is not None else load_outcome_table()
    return {key: entry.label for key, entry in table.items()}


def scan_type_label(scan_type: str, table: Dict[str, ScanTypeTable] | None = None) -> str:
    """Human label for a scan-type key; unknown keys are returned as-is."""
    return scan_type_labels(table).get(scan_type, scan_type)


def synthesize_result(
    scan_type: str,
    rng: random.Random | None = None,
    table: Dict[str, ScanTypeTable] | None = None,
) -> Outcome:
    rng = rng or random.Random()
    table = table if table is not None else load_outcome_table()
    entry = table.get(scan_type) or table[DEFAULT_SCAN_TYPE]
    tier = rng.choices(entry.tiers, weights=[t.weight for t in entry.tiers], k=1)[0]
    bundle = rng.choice(tier.bundles)
    return Outcome(
        diagnosis=bundle["diagnosis"],
        confidence=float(bundle["confidence"]),
        severity=bundle["severity"],
        findings=list(bundle["findings"]),
        recommendations=list(bundle["recommendations"]),
        prescription=dict(bundle["prescription"]),
        tier=tier.tier,
    )
