"""
Statistical Anomaly Extractor — outliers and duplicate amounts in billing batches.

Vectorized over the whole batch with numpy. Each item is scored against the
rest of the batch (leave-one-out), so a single extreme amount cannot mask
itself by inflating the batch variance:

    z_i = |x_i - mean(x_{-i})| / max(std(x_{-i}), 1% of mean(x_{-i}), 0.01)

|z| > 3 → outlier at 0.7, |z| > 4 → outlier at 0.9.
Every item whose exact amount appears more than once → DUPLICATE_AMOUNTS at 0.8.
Findings are keyed by record id, never by position.
"""

import numpy as np

from fwaguard.detection.base import Extractor
from fwaguard.schemas.analysis import Finding, FindingCategory
from fwaguard.schemas.evidence import BillingEvidence

Z_OUTLIER: float = 3.0
Z_SEVERE: float = 4.0
OUTLIER_CONFIDENCE: float = 0.7
SEVERE_OUTLIER_CONFIDENCE: float = 0.9
DUPLICATE_CONFIDENCE: float = 0.8
MIN_ITEMS_FOR_OUTLIERS: int = 3
STD_FLOOR_RATIO: float = 0.01
STD_FLOOR_ABS: float = 0.01


def batch_statistics(amounts: np.ndarray) -> dict[str, float]:
    """count / mean / median / std_dev (population) / min / max."""
    if amounts.size == 0:
        return {"count": 0.0}
    return {
        "count": float(amounts.size),
        "mean": round(float(np.mean(amounts)), 4),
        "median": round(float(np.median(amounts)), 4),
        "std_dev": round(float(np.std(amounts)), 4),
        "min": float(np.min(amounts)),
        "max": float(np.max(amounts)),
    }


def leave_one_out_z(amounts: np.ndarray) -> np.ndarray:
    """Absolute z-score of each item against the mean/std of the others."""
    n = amounts.size
    if n < MIN_ITEMS_FOR_OUTLIERS:
        return np.zeros(n)

    # Center first to keep the sum-of-squares stable for large amounts
    shift = float(np.mean(amounts))
    centered = amounts - shift
    total = centered.sum()
    total_sq = np.square(centered).sum()

    others_mean = (total - centered) / (n - 1)
    others_var = (total_sq - np.square(centered)) / (n - 1) - np.square(others_mean)
    others_std = np.sqrt(np.clip(others_var, 0.0, None))

    floor = np.maximum(STD_FLOOR_RATIO * np.abs(others_mean + shift), STD_FLOOR_ABS)
    return np.abs(centered - others_mean) / np.maximum(others_std, floor)


class StatisticalAnomalyExtractor(Extractor):
    name = "statistical"

    def __init__(
        self,
        z_outlier: float = Z_OUTLIER,
        z_severe: float = Z_SEVERE,
        duplicate_confidence: float = DUPLICATE_CONFIDENCE,
    ):
        self.z_outlier = z_outlier
        self.z_severe = z_severe
        self.duplicate_confidence = duplicate_confidence

    def statistics(self, evidence: BillingEvidence) -> dict[str, float]:
        return batch_statistics(np.array([r.amount for r in evidence.records], dtype=float))

    async def detect(self, evidence: BillingEvidence) -> list[Finding]:
        ids = [r.id for r in evidence.records]
        amounts = np.array([r.amount for r in evidence.records], dtype=float)

        findings = self._outliers(ids, amounts)
        findings.extend(self._duplicates(ids, amounts))
        return findings

    def _outliers(self, ids: list[str], amounts: np.ndarray) -> list[Finding]:
        z = leave_one_out_z(amounts)
        findings = []
        for idx in np.flatnonzero(z > self.z_outlier):
            score = float(z[idx])
            findings.append(Finding(
                category=FindingCategory.STATISTICAL_OUTLIER,
                local_confidence=SEVERE_OUTLIER_CONFIDENCE if score > self.z_severe else OUTLIER_CONFIDENCE,
                evidence_ref=ids[idx],
                detector=self.name,
                detail={"amount": float(amounts[idx]), "z_score": round(score, 4)},
            ))
        return findings

    def _duplicates(self, ids: list[str], amounts: np.ndarray) -> list[Finding]:
        _, inverse, counts = np.unique(amounts, return_inverse=True, return_counts=True)
        occurrences = counts[inverse]
        findings = []
        for idx in np.flatnonzero(occurrences > 1):
            findings.append(Finding(
                category=FindingCategory.DUPLICATE_AMOUNTS,
                local_confidence=self.duplicate_confidence,
                evidence_ref=ids[idx],
                detector=self.name,
                detail={"amount": float(amounts[idx]), "occurrences": int(occurrences[idx])},
            ))
        return findings
