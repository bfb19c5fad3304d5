"""Errores del flujo de verificación de tickets

Cada error lleva un código estable (para el cliente) y un mensaje legible
para el operador. Las rutas los convierten en respuestas JSON; nunca se
muestra una excepción cruda.
"""
from typing import Optional


class VerificationError(Exception):
    """Error base del flujo de verificación"""

    code = "verification_error"
    message = "No se pudo completar la operación."

    def __init__(self, message: Optional[str] = None):
        if message:
            self.message = message
        super().__init__(self.message)


# ==================== SCAN ====================

class UnresolvableId(VerificationError):
    code = "unresolvable_id"
    message = "No se pudo extraer un ID de ticket del código QR."


class TicketNotFound(VerificationError):
    code = "ticket_not_found"
    message = "Ticket no encontrado."


class EventNotFound(VerificationError):
    code = "event_not_found"
    message = "El ticket existe, pero su evento asociado no fue encontrado."


class LookupFailure(VerificationError):
    code = "lookup_failure"
    message = "No se pudieron obtener los datos del ticket o del evento."


class CameraUnavailable(VerificationError):
    code = "camera_unavailable"
    message = "Cámara no disponible. Habilita el permiso de cámara e intenta nuevamente."


# ==================== AUTORIZACIÓN ====================

class IncorrectPin(VerificationError):
    code = "incorrect_pin"
    message = "PIN inválido. La autorización falló."


class Unauthorized(VerificationError):
    code = "unauthorized"
    message = "Se requiere el PIN del titular antes de modificar el ticket."


# ==================== BENEFICIOS ====================

class BenefitRuleViolation(VerificationError):
    """Regla de canje violada; el ledger queda sin cambios"""

    code = "benefit_rule_violation"


class BenefitNotFound(BenefitRuleViolation):
    code = "benefit_not_found"
    message = "El beneficio no existe en este ticket."


class NotEligibleToday(BenefitRuleViolation):
    code = "not_eligible_today"
    message = "Este beneficio no está disponible hoy."


class AlreadyUsedToday(BenefitRuleViolation):
    code = "already_used_today"
    message = "Este beneficio ya fue utilizado hoy."


class EventNotStarted(NotEligibleToday):
    code = "event_not_started"
    message = "No se pueden canjear beneficios antes del inicio del evento."


class OutsideTimeWindow(BenefitRuleViolation):
    code = "outside_time_window"
    message = "El beneficio está fuera de su horario de canje."


class TicketCancelled(BenefitRuleViolation):
    code = "ticket_cancelled"
    message = "El ticket está cancelado; reactívalo antes de canjear beneficios."


# ==================== PERSISTENCIA / SESIÓN ====================

class PersistenceFailure(VerificationError):
    code = "persistence_failure"
    message = "No se pudo guardar el cambio. La operación no se realizó; intenta nuevamente."


class ConcurrentModification(VerificationError):
    code = "concurrent_modification"
    message = "El ticket fue modificado desde otro dispositivo. Se recargó su estado actual; revisa e intenta nuevamente."


class OperationInProgress(VerificationError):
    code = "operation_in_progress"
    message = "Hay otra operación en curso para esta sesión."


class InvalidTransition(VerificationError):
    code = "invalid_transition"
    message = "La acción no está permitida en el estado actual del escaneo."


class SessionNotFound(VerificationError):
    code = "session_not_found"
    message = "Sesión de verificación no encontrada o expirada."
