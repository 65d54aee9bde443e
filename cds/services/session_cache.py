import structlog
from typing import Optional
from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from cds.core.config import settings
from cds.core.security import DataEncryption
from cds.schemas.results import SessionRecord

logger = structlog.get_logger()

# Connection Pool
redis_client = Redis(
    host=settings.REDIS_HOST,
    port=settings.REDIS_PORT,
    decode_responses=True # Returns strings instead of bytes
)

SESSION_KEY_PREFIX = "cds_session"

def session_key(session_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}:{session_id}"


class SessionCache:
    """
    Write-once, read-many store for finished CDS sessions.
    Records are encrypted (they embed the full clinical context) and expire by TTL.
    """

    def __init__(self, redis: Redis = redis_client, ttl_seconds: int = settings.SESSION_TTL_SECONDS):
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type((RedisConnectionError, RedisTimeoutError)),
        reraise=True
    )
    async def cache_session(self, record: SessionRecord):
        payload = DataEncryption.encrypt(record.model_dump_json())
        await self.redis.setex(session_key(record.session_id), self.ttl_seconds, payload)
        logger.info("session_cached", session_id=record.session_id, ttl=self.ttl_seconds)

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        payload = await self.redis.get(session_key(session_id))
        if not payload:
            return None
        return SessionRecord.model_validate_json(DataEncryption.decrypt(payload))
