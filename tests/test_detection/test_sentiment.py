"""Lexicon sentiment scoring."""

import pytest

from fwaguard.detection.sentiment import SentimentAnalyzer
from fwaguard.schemas.evidence import TranscriptEvidence


def test_strongly_negative_clamps_to_minus_one():
    analyzer = SentimentAnalyzer()
    assert analyzer.score("This is a terrible scam, they lied and cheated me") == -1.0


def test_positive_text():
    assert SentimentAnalyzer().score("thank you, that was very helpful") > 0


def test_neutral_text_is_zero():
    assert SentimentAnalyzer().score("my member id is on the card") == 0.0


def test_no_tokens():
    assert SentimentAnalyzer().score("12345 !!!") == 0.0


def test_average_over_tokens():
    # "bad" = -3 over 6 tokens
    assert SentimentAnalyzer().score("the call was a bad one") == -0.5


def test_custom_valences():
    analyzer = SentimentAnalyzer(valences={"upcharge": -4})
    assert analyzer.score("upcharge") == -1.0


@pytest.mark.asyncio
async def test_analyze_reads_transcript_text():
    score = await SentimentAnalyzer().analyze(TranscriptEvidence(text="great, happy, thanks"))
    assert score == 1.0
