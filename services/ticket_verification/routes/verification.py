"""Rutas de verificación de tickets y canje de beneficios"""
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from typing import Dict
from zoneinfo import ZoneInfo
import logging

from app.core.config import settings
from shared.database.session import get_db
from shared.auth.dependencies import get_current_scanner
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.ticket_verification.errors import (
    AlreadyUsedToday,
    BenefitNotFound,
    BenefitRuleViolation,
    CameraUnavailable,
    ConcurrentModification,
    EventNotFound,
    IncorrectPin,
    InvalidTransition,
    LookupFailure,
    OperationInProgress,
    PersistenceFailure,
    SessionNotFound,
    TicketNotFound,
    Unauthorized,
    UnresolvableId,
    VerificationError,
)
from services.ticket_verification.models.verification import (
    PinRequest,
    RedeemAllResponse,
    ScanPayloadRequest,
    StartScanRequest,
    VerificationSessionResponse,
)
from services.ticket_verification.services.session_store import get_session_store
from services.ticket_verification.services.ticket_store import SqlTicketStore
from services.ticket_verification.services.verification_session import VerificationSession

logger = logging.getLogger(__name__)

router = APIRouter()


# Orden: subclases antes que sus bases
ERROR_STATUS = [
    (SessionNotFound, status.HTTP_404_NOT_FOUND),
    (TicketNotFound, status.HTTP_404_NOT_FOUND),
    (EventNotFound, status.HTTP_404_NOT_FOUND),
    (BenefitNotFound, status.HTTP_404_NOT_FOUND),
    (UnresolvableId, status.HTTP_400_BAD_REQUEST),
    (IncorrectPin, status.HTTP_401_UNAUTHORIZED),
    (Unauthorized, status.HTTP_403_FORBIDDEN),
    (AlreadyUsedToday, status.HTTP_409_CONFLICT),
    (BenefitRuleViolation, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ConcurrentModification, status.HTTP_409_CONFLICT),
    (OperationInProgress, status.HTTP_409_CONFLICT),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (CameraUnavailable, status.HTTP_409_CONFLICT),
    (PersistenceFailure, status.HTTP_502_BAD_GATEWAY),
    (LookupFailure, status.HTTP_502_BAD_GATEWAY),
]


def status_for_error(exc: VerificationError) -> int:
    for error_class, status_code in ERROR_STATUS:
        if isinstance(exc, error_class):
            return status_code
    return status.HTTP_400_BAD_REQUEST


async def verification_error_handler(request: Request, exc: VerificationError) -> JSONResponse:
    """Convertir errores del dominio en mensajes legibles para el operador"""
    return JSONResponse(
        status_code=status_for_error(exc),
        content={"error": exc.code, "detail": exc.message}
    )


def get_now() -> datetime:
    """Hora actual en la zona horaria de los eventos"""
    return datetime.now(ZoneInfo(settings.EVENT_TIMEZONE))


def get_ticket_store(db: AsyncSession = Depends(get_db)) -> SqlTicketStore:
    return SqlTicketStore(db)


@router.post("/sessions", response_model=VerificationSessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    sessions=Depends(get_session_store),
    now: datetime = Depends(get_now),
    current_user: Dict = Depends(get_current_scanner)
):
    """Abrir una sesión de verificación (estado inicial: idle)"""
    session = VerificationSession.new(operator_id=current_user.get("user_id"))
    await sessions.save(session)
    logger.info(f"Sesión de verificación {session.session_id} creada por {session.operator_id}")
    return session.describe(now)


@router.get("/sessions/{session_id}", response_model=VerificationSessionResponse)
async def get_session(
    session_id: str,
    sessions=Depends(get_session_store),
    now: datetime = Depends(get_now),
    current_user: Dict = Depends(get_current_scanner)
):
    """
    Estado de la sesión con el estado de cada beneficio recalculado a la hora actual.

    El cliente la consulta periódicamente para refrescar contadores y ventanas.
    """
    session = await sessions.load(session_id)
    return session.describe(now)


@router.post("/sessions/{session_id}/start", response_model=VerificationSessionResponse)
async def start_scan(
    session_id: str,
    request: StartScanRequest,
    sessions=Depends(get_session_store),
    now: datetime = Depends(get_now),
    current_user: Dict = Depends(get_current_scanner)
):
    """Iniciar escaneo (o registrar que la cámara no está disponible)"""
    async with sessions.lock(session_id):
        session = await sessions.load(session_id)
        session.start(request.camera_available)
        await sessions.save(session)
    return session.describe(now)


@router.post("/sessions/{session_id}/payload", response_model=VerificationSessionResponse)
@limiter.limit(RATE_LIMITS["validation"])
async def submit_payload(
    request: Request,
    session_id: str,
    body: ScanPayloadRequest,
    sessions=Depends(get_session_store),
    store: SqlTicketStore = Depends(get_ticket_store),
    now: datetime = Depends(get_now),
    current_user: Dict = Depends(get_current_scanner)
):
    """Procesar el contenido decodificado de un QR"""
    async with sessions.lock(session_id):
        session = await sessions.load(session_id)
        try:
            await session.submit_payload(body.payload, store)
        finally:
            await sessions.save(session)
    return session.describe(now)


@router.post("/sessions/{session_id}/authorize", response_model=VerificationSessionResponse)
@limiter.limit(RATE_LIMITS["pin"])
async def authorize_session(
    request: Request,
    session_id: str,
    body: PinRequest,
    sessions=Depends(get_session_store),
    now: datetime = Depends(get_now),
    current_user: Dict = Depends(get_current_scanner)
):
    """Desbloquear el manejo del ticket con el PIN del titular"""
    async with sessions.lock(session_id):
        session = await sessions.load(session_id)
        try:
            session.authorize(body.pin)
        finally:
            await sessions.save(session)
    return session.describe(now)


@router.post("/sessions/{session_id}/benefits/redeem-today", response_model=RedeemAllResponse)
@limiter.limit(RATE_LIMITS["pin"])
async def redeem_all_for_today(
    request: Request,
    session_id: str,
    body: PinRequest,
    sessions=Depends(get_session_store),
    store: SqlTicketStore = Depends(get_ticket_store),
    now: datetime = Depends(get_now),
    current_user: Dict = Depends(get_current_scanner)
):
    """Marcar todos los beneficios de hoy (requiere confirmar PIN nuevamente)"""
    async with sessions.lock(session_id):
        session = await sessions.load(session_id)
        try:
            marked = await session.redeem_all_for_today(body.pin, store, now)
        finally:
            await sessions.save(session)
    return RedeemAllResponse(marked=marked, session=session.describe(now))


@router.post("/sessions/{session_id}/benefits/{benefit_id}/redeem", response_model=VerificationSessionResponse)
async def redeem_benefit(
    session_id: str,
    benefit_id: str,
    sessions=Depends(get_session_store),
    store: SqlTicketStore = Depends(get_ticket_store),
    now: datetime = Depends(get_now),
    current_user: Dict = Depends(get_current_scanner)
):
    """Canjear un beneficio para hoy"""
    async with sessions.lock(session_id):
        session = await sessions.load(session_id)
        try:
            await session.redeem(benefit_id, store, now)
        finally:
            await sessions.save(session)
    return session.describe(now)


@router.post("/sessions/{session_id}/status/toggle", response_model=VerificationSessionResponse)
async def toggle_ticket_status(
    session_id: str,
    sessions=Depends(get_session_store),
    store: SqlTicketStore = Depends(get_ticket_store),
    now: datetime = Depends(get_now),
    current_user: Dict = Depends(get_current_scanner)
):
    """Cancelar o reactivar el ticket escaneado"""
    async with sessions.lock(session_id):
        session = await sessions.load(session_id)
        try:
            await session.toggle_status(store)
        finally:
            await sessions.save(session)
    return session.describe(now)


@router.post("/sessions/{session_id}/reset", response_model=VerificationSessionResponse)
async def reset_session(
    session_id: str,
    sessions=Depends(get_session_store),
    now: datetime = Depends(get_now),
    current_user: Dict = Depends(get_current_scanner)
):
    """Escanear siguiente: vuelve a idle y olvida la autorización"""
    async with sessions.lock(session_id):
        session = await sessions.load(session_id)
        session.reset()
        await sessions.save(session)
    return session.describe(now)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: str,
    sessions=Depends(get_session_store),
    current_user: Dict = Depends(get_current_scanner)
):
    """Cerrar la sesión de verificación"""
    await sessions.delete(session_id)
