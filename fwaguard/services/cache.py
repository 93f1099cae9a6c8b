"""
Analysis Cache — Redis memoization of AnalysisResult.

Key: fwa:analysis:{kind}:{sha256 of canonical evidence JSON}, TTL 1 hour.
Not a source of truth. Graceful degradation: if Redis is unavailable every
call is a miss and the analyzer computes directly.
"""

import time
from typing import Any, Optional

import structlog

from fwaguard.config import settings
from fwaguard.schemas.analysis import AnalysisResult, EvidenceKind

logger = structlog.get_logger(__name__)

KEY_PREFIX = "fwa:analysis"
RECONNECT_BACKOFF_SECONDS = 30.0


def analysis_key(kind: EvidenceKind, fingerprint: str) -> str:
    return f"{KEY_PREFIX}:{kind.value}:{fingerprint}"


class AnalysisCache:
    """
    Lazy Redis connection. After a failed connect, further attempts are
    skipped for RECONNECT_BACKOFF_SECONDS so a dead Redis costs nothing.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
        enabled: Optional[bool] = None,
        client: Any = None,
    ):
        self.redis_url = redis_url or settings.redis_url
        self.ttl_seconds = ttl_seconds or settings.analysis_cache_ttl_seconds
        self.enabled = settings.cache_enabled if enabled is None else enabled
        self._redis = client
        self._retry_after = 0.0

    async def _get_client(self):
        if not self.enabled:
            return None
        if self._redis is not None:
            return self._redis
        if time.monotonic() < self._retry_after:
            return None
        try:
            import redis.asyncio as aioredis

            client = aioredis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
            )
            await client.ping()
            self._redis = client
            logger.info("redis_connected")
        except Exception as e:
            self._retry_after = time.monotonic() + RECONNECT_BACKOFF_SECONDS
            logger.warning("redis_unavailable", error=str(e))
            return None
        return self._redis

    async def get(self, kind: EvidenceKind, fingerprint: str) -> Optional[AnalysisResult]:
        """Cached result, or None on miss / Redis down / corrupt entry."""
        try:
            r = await self._get_client()
            if r is None:
                return None
            raw = await r.get(analysis_key(kind, fingerprint))
            if not raw:
                return None
            return AnalysisResult.model_validate_json(raw)
        except Exception as e:
            logger.warning("analysis_cache_read_failed", error=str(e))
            return None

    async def set(self, kind: EvidenceKind, fingerprint: str, result: AnalysisResult) -> bool:
        try:
            r = await self._get_client()
            if r is None:
                return False
            await r.set(analysis_key(kind, fingerprint), result.model_dump_json(), ex=self.ttl_seconds)
            return True
        except Exception as e:
            logger.warning("analysis_cache_write_failed", error=str(e))
            return False

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
