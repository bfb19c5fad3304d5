"""Escaneo de QR y resolución del ticket + evento"""
from enum import Enum
from typing import Any, AsyncIterable, Callable, Dict, Optional, Protocol, Tuple
from urllib.parse import urlparse, unquote
import logging

from services.ticket_verification.errors import (
    CameraUnavailable,
    EventNotFound,
    InvalidTransition,
    LookupFailure,
    TicketNotFound,
    UnresolvableId,
    VerificationError,
)
from services.ticket_verification.models.ticket import Event, Ticket
from services.ticket_verification.services.ticket_store import TicketStore

logger = logging.getLogger(__name__)


class ScanState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"  # Intentando decodificar en cada frame
    AUTHENTICATING = "authenticating"  # Payload encontrado, buscando ticket
    SUCCESS = "success"
    ERROR = "error"
    CAMERA_UNAVAILABLE = "camera_unavailable"  # Permiso denegado o sin hardware


ALLOWED_TRANSITIONS = {
    ScanState.IDLE: {ScanState.SCANNING, ScanState.CAMERA_UNAVAILABLE},
    ScanState.CAMERA_UNAVAILABLE: {ScanState.SCANNING, ScanState.CAMERA_UNAVAILABLE, ScanState.IDLE},
    ScanState.SCANNING: {ScanState.AUTHENTICATING, ScanState.IDLE},
    ScanState.AUTHENTICATING: {ScanState.SUCCESS, ScanState.ERROR, ScanState.SCANNING, ScanState.IDLE},
    ScanState.SUCCESS: {ScanState.IDLE},
    ScanState.ERROR: {ScanState.IDLE},
}

FrameDecoder = Callable[[Any], Optional[str]]


class CameraSource(Protocol):
    """Fuente de frames de la cámara del dispositivo"""

    async def open(self) -> AsyncIterable[Any]:
        """Retorna el stream de frames; lanza CameraUnavailable si no hay acceso"""
        ...


def resolve_payload(raw: Optional[str]) -> str:
    """
    Extraer el ID de ticket de un payload escaneado.

    Si el payload es una URL, el ID es el último segmento del path
    (la query se ignora). Si no, el payload completo es el ID.
    """
    if raw is None:
        raise UnresolvableId()

    candidate = raw.strip()
    parsed = urlparse(candidate)
    if parsed.scheme and parsed.netloc:
        candidate = unquote(parsed.path.split("/")[-1])

    if not candidate:
        raise UnresolvableId()
    return candidate


async def load_ticket_and_event(store: TicketStore, ticket_id: str) -> Tuple[Ticket, Event]:
    """Cargar ticket y su evento; distingue ticket inexistente de evento huérfano"""
    try:
        ticket = await store.get_ticket_by_id(ticket_id)
        if ticket is None:
            raise TicketNotFound()

        event = await store.get_event_by_id(ticket.event_id)
        if event is None:
            raise EventNotFound()
    except VerificationError:
        raise
    except Exception as e:
        logger.error(f"Error cargando ticket {ticket_id}: {type(e).__name__}: {e}")
        raise LookupFailure() from e

    return ticket, event


class ScanPipeline:
    """
    Máquina de estados del escaneo:

        IDLE -> SCANNING -> AUTHENTICATING -> SUCCESS | ERROR

    SUCCESS y ERROR vuelven a IDLE solo con `reset()` (escanear siguiente);
    no hay reintento automático. Un payload sin ID devuelve a SCANNING.
    """

    def __init__(
        self,
        state: ScanState = ScanState.IDLE,
        ticket_id: Optional[str] = None,
        last_error: Optional[Dict[str, str]] = None
    ):
        self.state = state
        self.ticket_id = ticket_id
        self.last_error = last_error

    def _transition(self, target: ScanState):
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransition(
                f"No se puede pasar de '{self.state.value}' a '{target.value}'."
            )
        logger.debug(f"Scan: {self.state.value} -> {target.value}")
        self.state = target

    def _record_error(self, error: VerificationError):
        self.last_error = {"error": error.code, "detail": error.message}

    def start(self, camera_available: bool = True) -> ScanState:
        """Iniciar escaneo; sin cámara queda en CAMERA_UNAVAILABLE (reintentable)"""
        if not camera_available:
            self._transition(ScanState.CAMERA_UNAVAILABLE)
            self._record_error(CameraUnavailable())
            return self.state

        self._transition(ScanState.SCANNING)
        self.last_error = None
        return self.state

    async def start_camera(self, camera: CameraSource) -> Optional[AsyncIterable[Any]]:
        """Abrir la cámara e iniciar escaneo; retorna el stream o None si no hay acceso"""
        try:
            frames = await camera.open()
        except CameraUnavailable:
            logger.warning("Cámara no disponible para escanear")
            self.start(camera_available=False)
            return None
        self.start()
        return frames

    async def submit(self, raw: Optional[str], store: TicketStore) -> Tuple[Ticket, Event]:
        """Procesar un payload decodificado mientras se escanea"""
        if self.state != ScanState.SCANNING:
            raise InvalidTransition("No hay un escaneo activo.")
        self._transition(ScanState.AUTHENTICATING)

        try:
            ticket_id = resolve_payload(raw)
        except UnresolvableId as e:
            logger.warning("Payload escaneado sin ID de ticket utilizable")
            self._record_error(e)
            self._transition(ScanState.SCANNING)
            raise

        self.ticket_id = ticket_id
        try:
            result = await load_ticket_and_event(store, ticket_id)
        except VerificationError as e:
            logger.warning(f"Escaneo fallido para ticket {ticket_id}: {e.code}")
            self._record_error(e)
            self._transition(ScanState.ERROR)
            raise

        self.last_error = None
        self._transition(ScanState.SUCCESS)
        logger.info(f"Ticket {ticket_id} resuelto (evento {result[1].id})")
        return result

    async def scan_frames(
        self,
        frames: AsyncIterable[Any],
        decoder: FrameDecoder,
        store: TicketStore
    ) -> Optional[Tuple[Ticket, Event]]:
        """
        Decodificar frames hasta encontrar un payload.

        Se detiene en el primer payload resuelto, o si la sesión deja de
        estar en SCANNING (reset). Payloads sin ID se descartan y el
        escaneo continúa. Retorna None si el stream termina sin resultado.
        """
        if self.state != ScanState.SCANNING:
            raise InvalidTransition("No hay un escaneo activo.")

        async for frame in frames:
            if self.state != ScanState.SCANNING:
                return None
            payload = decoder(frame)
            if not payload:
                continue
            try:
                return await self.submit(payload, store)
            except UnresolvableId:
                continue
        return None

    def reset(self):
        """Escanear siguiente: vuelve a IDLE desde cualquier estado"""
        self.state = ScanState.IDLE
        self.ticket_id = None
        self.last_error = None
