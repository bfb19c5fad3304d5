"""Service entry point para ticket verification"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from slowapi.errors import RateLimitExceeded
from app.core.config import settings
from shared.database.connection import init_db, close_db
from shared.cache.redis_client import init_redis, close_redis
from shared.utils.rate_limiter import limiter, rate_limit_exceeded_handler
from services.ticket_verification.errors import VerificationError
from services.ticket_verification.routes.verification import router, verification_error_handler


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    if settings.SESSION_BACKEND == "redis":
        await init_redis()
    yield
    await close_db()
    if settings.SESSION_BACKEND == "redis":
        await close_redis()


app = FastAPI(title="Ticket Verification Service", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(VerificationError, verification_error_handler)
app.include_router(router, prefix="/api/v1/verification", tags=["verification"])
