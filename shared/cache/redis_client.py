"""Cliente Redis para sesiones de verificación y locks por sesión"""
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
import json
from typing import Optional, Any
import logging
import uuid

from app.core.config import settings

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None
redis_pool: Optional[ConnectionPool] = None

# Solo el dueño del lock puede liberarlo
RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


async def init_redis():
    """Inicializar pool de conexiones a Redis"""
    global redis_client, redis_pool

    redis_pool = ConnectionPool.from_url(
        settings.REDIS_URL,
        password=settings.REDIS_PASSWORD or None,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_keepalive=True,
        retry_on_timeout=True,
        health_check_interval=30,
    )
    redis_client = redis.Redis(connection_pool=redis_pool)

    try:
        await redis_client.ping()
        logger.info(f"Redis conectado (pool max_connections={settings.REDIS_MAX_CONNECTIONS})")
    except Exception as e:
        # Las sesiones fallarán al usarse; el arranque no se bloquea
        logger.error(f"Error conectando a Redis: {e}")


async def get_redis() -> redis.Redis:
    if redis_client is None:
        await init_redis()
    return redis_client


async def close_redis():
    global redis_client, redis_pool
    if redis_client:
        await redis_client.close()
        redis_client = None
    if redis_pool:
        await redis_pool.disconnect()
        redis_pool = None
    logger.info("Redis desconectado")


class DistributedLock:
    """
    Lock no bloqueante sobre Redis (SET NX + expiración).

    Un solo intento: `acquire` retorna False si otra instancia tiene el
    lock. La expiración libera locks de procesos caídos.
    """

    def __init__(self, key: str, expire: int = 30):
        self.key = f"lock:{key}"
        self.expire = expire
        self.identifier: Optional[str] = None

    async def acquire(self) -> bool:
        redis_conn = await get_redis()
        identifier = uuid.uuid4().hex
        if await redis_conn.set(self.key, identifier, nx=True, ex=self.expire):
            self.identifier = identifier
            return True
        return False

    async def release(self):
        if not self.identifier:
            return
        redis_conn = await get_redis()
        await redis_conn.eval(RELEASE_LOCK_SCRIPT, 1, self.key, self.identifier)
        self.identifier = None


async def cache_get(key: str) -> Optional[Any]:
    """Leer un valor JSON; None si no existe"""
    redis_conn = await get_redis()
    value = await redis_conn.get(key)
    if value is None:
        return None
    return json.loads(value)


async def cache_set(key: str, value: Any, expire: int = 3600):
    """Guardar un valor serializable a JSON con TTL en segundos"""
    redis_conn = await get_redis()
    await redis_conn.setex(key, expire, json.dumps(value))


async def cache_delete(key: str):
    redis_conn = await get_redis()
    await redis_conn.delete(key)
