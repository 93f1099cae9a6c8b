"""Analysis cache: keys, round trips and graceful degradation."""

from datetime import datetime, timezone

import pytest

from fwaguard.schemas.analysis import AnalysisResult, EvidenceKind, RiskLevel
from fwaguard.schemas.incident import IncidentType
from fwaguard.services.cache import AnalysisCache, analysis_key


def _result() -> AnalysisResult:
    return AnalysisResult(
        evidence_kind=EvidenceKind.BILLING,
        evidence_id="batch-1",
        overall_confidence=0.45,
        risk_level=RiskLevel.LOW,
        reportable=True,
        incident_type=IncidentType.BILLING_IRREGULARITY,
        statistics={"count": 6.0},
        analyzed_at=datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc),
    )


class DictRedis:
    def __init__(self):
        self.data = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value

    async def aclose(self):
        self.closed = True


class BrokenRedis:
    async def get(self, key):
        raise ConnectionError("redis down")

    async def set(self, key, value, ex=None):
        raise ConnectionError("redis down")


def test_key_layout():
    assert analysis_key(EvidenceKind.TRANSCRIPT, "abc") == "fwa:analysis:transcript:abc"


@pytest.mark.asyncio
async def test_round_trip():
    cache = AnalysisCache(enabled=True, client=DictRedis())
    assert await cache.get(EvidenceKind.BILLING, "f1") is None
    assert await cache.set(EvidenceKind.BILLING, "f1", _result()) is True
    assert await cache.get(EvidenceKind.BILLING, "f1") == _result()


@pytest.mark.asyncio
async def test_corrupt_entry_is_a_miss():
    redis = DictRedis()
    redis.data[analysis_key(EvidenceKind.BILLING, "f1")] = "{not json"
    assert await AnalysisCache(enabled=True, client=redis).get(EvidenceKind.BILLING, "f1") is None


@pytest.mark.asyncio
async def test_broken_client_degrades():
    cache = AnalysisCache(enabled=True, client=BrokenRedis())
    assert await cache.get(EvidenceKind.BILLING, "f1") is None
    assert await cache.set(EvidenceKind.BILLING, "f1", _result()) is False


@pytest.mark.asyncio
async def test_disabled_cache_never_touches_client():
    redis = DictRedis()
    cache = AnalysisCache(enabled=False, client=redis)
    assert await cache.set(EvidenceKind.BILLING, "f1", _result()) is False
    assert redis.data == {}


@pytest.mark.asyncio
async def test_unreachable_redis_backs_off():
    cache = AnalysisCache(redis_url="redis://127.0.0.1:1/0", enabled=True)
    assert await cache.get(EvidenceKind.BILLING, "f1") is None
    assert cache._retry_after > 0
    # Within the backoff window no reconnect is attempted
    assert await cache._get_client() is None


@pytest.mark.asyncio
async def test_close_releases_client():
    redis = DictRedis()
    cache = AnalysisCache(enabled=True, client=redis)
    await cache.close()
    assert redis.closed is True
    assert cache._redis is None
