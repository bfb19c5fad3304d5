"""Guardia de autorización por PIN del titular"""
from enum import Enum
from typing import Optional
import hmac
import logging

from services.ticket_verification.errors import IncorrectPin, Unauthorized
from services.ticket_verification.models.ticket import Ticket

logger = logging.getLogger(__name__)


class AuthorizationState(str, Enum):
    UNAUTHORIZED = "unauthorized"
    AUTHORIZED = "authorized"


def pin_matches(input_pin: Optional[str], ticket: Ticket) -> bool:
    """Comparación exacta de strings en tiempo constante (sin coerción numérica)"""
    if not isinstance(input_pin, str) or not isinstance(ticket.pin, str):
        return False
    return hmac.compare_digest(input_pin.encode("utf-8"), ticket.pin.encode("utf-8"))


def authorize(input_pin: Optional[str], ticket: Ticket) -> AuthorizationState:
    """Retorna AUTHORIZED si el PIN coincide; si no, lanza IncorrectPin"""
    if pin_matches(input_pin, ticket):
        return AuthorizationState.AUTHORIZED
    raise IncorrectPin()


class PinGuard:
    """
    Compuerta de autorización de una sesión de verificación.

    UNAUTHORIZED -> AUTHORIZED al ingresar el PIN correcto. No hay bloqueo
    por intentos: un PIN incorrecto solo vuelve a pedir el PIN. El estado
    AUTHORIZED dura hasta `reset()` (nuevo escaneo).
    """

    def __init__(self, state: AuthorizationState = AuthorizationState.UNAUTHORIZED, failed_attempts: int = 0):
        self.state = state
        self.failed_attempts = failed_attempts

    @property
    def is_authorized(self) -> bool:
        return self.state == AuthorizationState.AUTHORIZED

    def authorize(self, input_pin: Optional[str], ticket: Ticket) -> AuthorizationState:
        try:
            self.state = authorize(input_pin, ticket)
        except IncorrectPin:
            self.failed_attempts += 1
            logger.warning(f"PIN incorrecto para ticket {ticket.id} (intento fallido #{self.failed_attempts})")
            raise
        return self.state

    def require_authorized(self):
        if not self.is_authorized:
            raise Unauthorized()

    def reset(self):
        self.state = AuthorizationState.UNAUTHORIZED
        self.failed_attempts = 0


def confirm_bulk_action(input_pin: Optional[str], ticket: Ticket):
    """
    Segunda guardia, independiente, para "marcar todo hoy": exige PIN nuevo
    aunque la sesión ya esté autorizada.
    """
    PinGuard().authorize(input_pin, ticket)
