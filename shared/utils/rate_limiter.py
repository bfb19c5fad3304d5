"""
Rate limiting usando slowapi

Limita los intentos de PIN por operador y sesión de verificación. El
dominio permite reintentos ilimitados; este límite es solo de transporte.
Storage configurable (memory:// o redis://) para compartir el conteo
entre instancias.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request, Response
from starlette.responses import JSONResponse
import hashlib
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)


def get_real_client_ip(request: Request) -> str:
    """IP del dispositivo considerando proxies (nginx/cloudflare)"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # client, proxy1, proxy2
        return forwarded_for.split(",")[0].strip()
    return request.headers.get("X-Real-IP") or get_remote_address(request)


def get_operator_key(request: Request) -> str:
    """
    Clave de conteo: operador (hash del token) + sesión de verificación.

    Dos scanners en la misma red de la puerta no comparten cupo, y un
    operador que atiende tickets en sesiones distintas tampoco.
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        operator = hashlib.sha256(auth_header.encode()).hexdigest()[:12]
    else:
        operator = get_real_client_ip(request)

    session_id = request.path_params.get("session_id")
    if session_id:
        return f"{operator}:{session_id}"
    return operator


limiter = Limiter(
    key_func=get_operator_key,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    headers_enabled=False,  # Incompatible con response_model de FastAPI
    enabled=settings.RATE_LIMIT_ENABLED,
)


DEFAULT_RETRY_AFTER = 60


def retry_after_seconds(exc: RateLimitExceeded) -> int:
    """Duración de la ventana del límite excedido, en segundos"""
    limit = getattr(exc, "limit", None)
    if limit is None or getattr(limit, "limit", None) is None:
        return DEFAULT_RETRY_AFTER
    return int(limit.limit.get_expiry())


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """429 con el mismo formato {error, detail} de los errores de verificación"""
    retry_after = retry_after_seconds(exc)
    logger.warning(
        f"Rate limit excedido en {request.url.path} "
        f"(cliente {get_real_client_ip(request)}, límite {exc.detail})"
    )
    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "detail": "Demasiados intentos. Espera antes de volver a ingresar el PIN.",
            "retry_after_seconds": retry_after,
        },
        headers={"Retry-After": str(retry_after)}
    )


# Límites por tipo de operación
RATE_LIMITS = {
    "pin": settings.RATE_LIMIT_PIN,  # authorize y redeem-today
    "validation": "120/minute",  # payloads escaneados
}
