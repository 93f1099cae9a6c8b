"""
Pattern Extractor — phrase patterns and keyword density over free text.

Each matched phrase pattern yields a Finding at a fixed base confidence.
Keyword density yields one KEYWORD_MATCH finding whose confidence scales
with the number of distinct keywords present, capped.
"""

import re

from fwaguard.detection.base import Extractor
from fwaguard.schemas.analysis import Finding, FindingCategory
from fwaguard.schemas.evidence import TranscriptEvidence

PATTERN_CONFIDENCE: float = 0.85
KEYWORD_STEP: float = 0.2
KEYWORD_CAP: float = 0.9

FRAUD_KEYWORDS: tuple[str, ...] = (
    "fake", "false", "fraudulent", "scam", "cheat", "steal", "unauthorized",
    "identity theft", "stolen", "forged", "duplicate", "ghost", "phantom",
    "kickback", "bribe", "corruption", "manipulation", "deceive",
)

SUSPICIOUS_PATTERNS: dict[FindingCategory, tuple[re.Pattern, ...]] = {
    FindingCategory.BILLING_PATTERN: (
        re.compile(r"billing\s+for\s+services?\s+not\s+provided", re.I),
        re.compile(r"up\s*cod(ing|ed)", re.I),
        re.compile(r"ghost\s+patients?", re.I),
        re.compile(r"phantom\s+billing", re.I),
        re.compile(r"duplicate\s+claims?", re.I),
    ),
    FindingCategory.ENROLLMENT_PATTERN: (
        re.compile(r"unauthorized\s+enrollment", re.I),
        re.compile(r"enrollment\s+without\s+consent", re.I),
        re.compile(r"fake\s+beneficiar(y|ies)", re.I),
        re.compile(r"identity\s+theft", re.I),
        re.compile(r"stolen\s+medicare\s+numbers?", re.I),
    ),
    FindingCategory.BENEFITS_PATTERN: (
        re.compile(r"misrepresent(ed|ing)\s+benefits?", re.I),
        re.compile(r"false\s+information\s+about", re.I),
        re.compile(r"exaggerat(ed|ing)\s+coverage", re.I),
        re.compile(r"misleading\s+marketing", re.I),
    ),
}


class PatternExtractor(Extractor):
    """Pure function of the input text."""

    name = "pattern"

    def __init__(
        self,
        patterns: dict[FindingCategory, tuple[re.Pattern, ...]] | None = None,
        keywords: tuple[str, ...] = FRAUD_KEYWORDS,
        pattern_confidence: float = PATTERN_CONFIDENCE,
    ):
        self.patterns = patterns or SUSPICIOUS_PATTERNS
        self.keywords = keywords
        self.pattern_confidence = pattern_confidence

    async def detect(self, evidence: TranscriptEvidence) -> list[Finding]:
        return self.scan(evidence.text, evidence_ref=evidence.call_id or "transcript")

    def scan(self, text: str, evidence_ref: str = "text") -> list[Finding]:
        findings: list[Finding] = []

        for category, regexes in self.patterns.items():
            for regex in regexes:
                match = regex.search(text)
                if match:
                    findings.append(Finding(
                        category=category,
                        local_confidence=self.pattern_confidence,
                        evidence_ref=evidence_ref,
                        detector=self.name,
                        detail={"pattern": regex.pattern, "match": match.group(0)},
                    ))

        lowered = text.lower()
        matched = [kw for kw in self.keywords if kw in lowered]
        if matched:
            findings.append(Finding(
                category=FindingCategory.KEYWORD_MATCH,
                local_confidence=keyword_confidence(len(matched)),
                evidence_ref=evidence_ref,
                detector=self.name,
                detail={"count": len(matched), "keywords": matched},
            ))

        return findings


def keyword_confidence(count: int) -> float:
    """0.2 per distinct keyword, capped at 0.9."""
    return round(min(KEYWORD_CAP, count * KEYWORD_STEP), 4)
