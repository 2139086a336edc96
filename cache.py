import logging
from typing import Optional

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

PRODUCT_TTL_SECONDS = 600  # 10 minutes


class ProductCache:
    """
    Redis cache for product detail payloads.
    With no redis configured (or redis down at startup) every call is a no-op.
    """

    def __init__(self, pool: Optional[aioredis.ConnectionPool] = None):
        self._pool = pool

    @classmethod
    async def connect(cls, redis_url: Optional[str]) -> "ProductCache":
        if not redis_url:
            logger.info("REDIS_URL not set; product cache disabled.")
            return cls()
        try:
            pool = aioredis.ConnectionPool.from_url(redis_url, decode_responses=True)
            r = aioredis.Redis(connection_pool=pool)
            await r.ping()
            logger.info("Successfully connected to Redis and Redis pool initialized.")
            return cls(pool)
        except Exception as e:
            logger.error(f"Could not connect to Redis: {e}")
            return cls()

    @property
    def enabled(self) -> bool:
        return self._pool is not None

    @staticmethod
    def key(product_id: str) -> str:
        return f"product:{product_id}"

    def _client(self) -> aioredis.Redis:
        return aioredis.Redis(connection_pool=self._pool)

    async def get(self, product_id: str) -> Optional[str]:
        if not self.enabled:
            return None
        return await self._client().get(self.key(product_id))

    async def set(self, product_id: str, payload: str):
        if not self.enabled:
            return
        await self._client().set(self.key(product_id), payload, ex=PRODUCT_TTL_SECONDS)
        logger.info(f"Product {product_id} cached in Redis.")

    async def invalidate(self, *product_ids: str):
        if not self.enabled or not product_ids:
            return
        await self._client().delete(*(self.key(pid) for pid in product_ids))
        logger.info(f"Cache invalidated for products {', '.join(product_ids)}.")

    async def ping(self) -> bool:
        if not self.enabled:
            return False
        return await self._client().ping()

    async def close(self):
        if self._pool is not None:
            await self._pool.disconnect()
            logger.info("Redis connection pool closed.")
