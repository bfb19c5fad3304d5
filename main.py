"""API Gateway principal - Punto de entrada de la aplicación"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
import logging
from contextlib import asynccontextmanager

from app.core.config import settings
from shared.database.connection import init_db, close_db
from shared.cache.redis_client import init_redis, close_redis
from shared.utils.rate_limiter import limiter, rate_limit_exceeded_handler
from services.ticket_verification.errors import VerificationError
from services.ticket_verification.routes.verification import (
    router as verification_router,
    verification_error_handler,
)

# Configurar logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle events de la aplicación"""
    logger.info("Iniciando aplicación...")
    await init_db()
    if settings.SESSION_BACKEND == "redis":
        await init_redis()
    logger.info("Aplicación iniciada")
    yield
    logger.info("Cerrando aplicación...")
    await close_db()
    if settings.SESSION_BACKEND == "redis":
        await close_redis()
    logger.info("Aplicación cerrada")


app = FastAPI(
    title="Crodify Verification API",
    description="Verificación de tickets y canje de beneficios para staff de eventos",
    version="1.0.0",
    lifespan=lifespan
)

# En desarrollo, permitir todos los orígenes para facilitar testing
if settings.APP_ENV == "development":
    allow_origins = ["*"]
    allow_credentials = False  # No se puede usar credentials con allow_origins=["*"]
else:
    allow_origins = [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]
    allow_credentials = True
    logger.info(f"CORS origins configurados: {allow_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=allow_credentials,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,  # Cache preflight requests por 1 hora
)

# Rate limiting y errores del dominio
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(VerificationError, verification_error_handler)

app.include_router(verification_router, prefix="/api/v1/verification", tags=["verification"])


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "ok", "service": "crodify-verification"}


@app.get("/ready")
async def ready():
    """Ready check endpoint - verifica conexiones"""
    from fastapi.responses import JSONResponse
    from sqlalchemy import text
    from shared.database import connection

    try:
        async with connection.async_session_maker() as session:
            await session.execute(text("SELECT 1"))

        checks = {"status": "ready", "database": "connected"}
        if settings.SESSION_BACKEND == "redis":
            from shared.cache.redis_client import get_redis
            redis = await get_redis()
            await redis.ping()
            checks["redis"] = "connected"
        return checks
    except Exception as e:
        logger.error(f"Ready check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "not ready", "error": str(e)})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.APP_DEBUG
    )
