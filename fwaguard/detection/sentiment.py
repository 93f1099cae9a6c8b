"""
Lexicon Sentiment — AFINN-style valence averaged over tokens.

Score = Σ valence(token) / n_tokens, clamped to [-1, 1].
Sentiment never stands alone as a Finding; fusion turns a strongly
negative score into a small positive confidence bias.
"""

import re

from fwaguard.schemas.evidence import TranscriptEvidence

_TOKEN_RE = re.compile(r"[a-z']+")

# Subset of the AFINN-165 word list, valences in [-5, 5].
VALENCES: dict[str, int] = {
    # negative
    "abuse": -3, "abused": -3, "angry": -3, "annoyed": -2, "argue": -2,
    "bad": -3, "bastard": -5, "blame": -2, "bribe": -3, "cheat": -3,
    "cheated": -3, "complain": -2, "crap": -3, "damn": -4, "deceive": -3,
    "deceived": -3, "deny": -2, "disappointed": -2, "disgusting": -3,
    "dishonest": -2, "dumb": -3, "fake": -3, "false": -1, "fraud": -4,
    "fraudulent": -4, "furious": -3, "guilty": -3, "hate": -3, "hell": -4,
    "hostile": -2, "idiot": -3, "illegal": -3, "kill": -3, "liar": -3,
    "lie": -2, "lied": -2, "lying": -2, "mad": -3, "misleading": -3,
    "scam": -2, "scammed": -3, "shut": -1, "steal": -2, "stolen": -2,
    "stupid": -2, "terrible": -3, "threat": -2, "threaten": -2,
    "threatened": -2, "ugly": -3, "unfair": -2, "upset": -2, "useless": -2,
    "worst": -3, "wrong": -2, "never": -1, "no": -1, "refuse": -2,
    "refused": -2, "pressure": -1, "pressured": -2, "forced": -2,
    # positive
    "agree": 1, "appreciate": 2, "best": 3, "care": 2, "clear": 1,
    "excellent": 3, "fair": 2, "fine": 2, "glad": 3, "good": 3,
    "great": 3, "happy": 3, "help": 2, "helpful": 2, "honest": 2,
    "kind": 2, "love": 3, "nice": 3, "please": 1, "pleased": 3,
    "thank": 2, "thanks": 2, "welcome": 2, "yes": 1,
}


class SentimentAnalyzer:
    """Stateless; ``score`` is a pure function of the text."""

    name = "sentiment"

    def __init__(self, valences: dict[str, int] | None = None):
        self.valences = valences or VALENCES

    async def analyze(self, evidence: TranscriptEvidence) -> float:
        return self.score(evidence.text)

    def score(self, text: str) -> float:
        tokens = _TOKEN_RE.findall(text.lower())
        if not tokens:
            return 0.0
        total = sum(self.valences.get(tok, 0) for tok in tokens)
        raw = total / len(tokens)
        return round(max(-1.0, min(1.0, raw)), 4)
