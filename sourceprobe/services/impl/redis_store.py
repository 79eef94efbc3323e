"""Redis 프로브 결과 저장소 - 프로세스 간 공유 캐시 계층"""
from typing import Optional

from pydantic import ValidationError
from redis import Redis

from sourceprobe.core.config import settings
from sourceprobe.core.exceptions import CacheConnectionException, CacheSerializationException
from sourceprobe.core.logging import logger
from sourceprobe.engine.cache import CacheKey
from sourceprobe.engine.result import ProbeResult
from sourceprobe.schemas.source_status_schema import CachedProbeResult
from sourceprobe.utils.hash_utils import generate_probe_cache_key


class RedisProbeStore:
    """Redis 기반 프로브 결과 저장소 (동기 클라이언트)

    TTL은 메모리 캐시와 같은 값을 SETEX로 적용합니다.
    실패는 CacheException 계층으로 던지고, 무시 여부는 호출자(ProbeCacheAdapter)가 결정합니다.
    """

    def __init__(self, redis_url: Optional[str] = None, redis_client: Optional[Redis] = None):
        """
        Args:
            redis_url: Redis URL (기본값: settings.redis_url)
            redis_client: 외부에서 생성한 클라이언트 (테스트용)

        Raises:
            CacheConnectionException: 연결 실패
        """
        if redis_client is not None:
            self.redis_client = redis_client
            return

        url = redis_url or settings.redis_url
        if not url:
            raise CacheConnectionException("redis_url is not configured")
        try:
            self.redis_client = Redis.from_url(
                url,
                decode_responses=True,
                socket_connect_timeout=settings.redis_socket_timeout_s,
                socket_timeout=settings.redis_socket_timeout_s,
            )
            self.redis_client.ping()
            logger.info("[REDIS] Connection established")
        except Exception as e:
            logger.error(f"[REDIS] Failed to connect: {type(e).__name__}: {e}")
            raise CacheConnectionException(str(e), details={"reason": str(e)}) from e

    @staticmethod
    def key_for(key: CacheKey) -> str:
        return generate_probe_cache_key(key.source_id, key.level.label, key.keyword_bucket)

    def get(self, key: CacheKey) -> Optional[ProbeResult]:
        """
        저장된 결과 조회

        Returns:
            ProbeResult 또는 None (미스)

        Raises:
            CacheSerializationException: 역직렬화 실패
            CacheConnectionException: Redis 오류
        """
        redis_key = self.key_for(key)
        try:
            cached_data = self.redis_client.get(redis_key)
        except Exception as e:
            raise CacheConnectionException(f"read failed: {e}", details={"key": redis_key}) from e

        if not cached_data:
            return None
        try:
            return CachedProbeResult.model_validate_json(cached_data).to_result()
        except (ValidationError, ValueError) as e:
            raise CacheSerializationException("deserialize", str(e), details={"key": redis_key}) from e

    def set(self, key: CacheKey, result: ProbeResult, ttl: float) -> bool:
        """
        결과 저장 (SETEX)

        Args:
            key: 캐시 키
            result: 프로브 결과
            ttl: TTL (초, 1초 미만은 1초로 올림)

        Returns:
            성공 여부
        """
        redis_key = self.key_for(key)
        try:
            payload = CachedProbeResult.from_result(result).model_dump_json()
        except (ValidationError, ValueError) as e:
            raise CacheSerializationException("serialize", str(e), details={"key": redis_key}) from e

        try:
            self.redis_client.setex(redis_key, max(1, int(ttl)), payload)
        except Exception as e:
            raise CacheConnectionException(f"write failed: {e}", details={"key": redis_key}) from e
        logger.debug(f"[REDIS] Set {redis_key}, TTL: {max(1, int(ttl))}s")
        return True

    def delete(self, key: CacheKey) -> bool:
        try:
            return self.redis_client.delete(self.key_for(key)) > 0
        except Exception as e:
            logger.warning(f"[REDIS] Delete failed: {type(e).__name__}: {e}")
            return False

    def health_check(self) -> bool:
        """Redis 연결 상태 확인"""
        try:
            self.redis_client.ping()
            return True
        except Exception:
            return False

    def close(self) -> None:
        try:
            self.redis_client.close()
        except Exception as e:
            logger.debug(f"[REDIS] Close failed: {type(e).__name__}: {e}")
