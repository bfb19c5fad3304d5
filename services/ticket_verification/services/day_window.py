"""Cálculo del día del evento y del estado de cada beneficio

Funciones puras: el instante actual (`now`) siempre se recibe como
parámetro, nunca se lee del reloj.
"""
from datetime import date, datetime, timedelta
from enum import Enum
from typing import List, Optional

from services.ticket_verification.models.ticket import Benefit, Event


class BenefitState(str, Enum):
    LOCKED = "locked"  # El día aún no llega
    AVAILABLE = "available"
    IN_PROGRESS = "in_progress"  # Canjeado hoy y dentro de su ventana horaria
    EXPIRED = "expired"
    USED = "used"


def day_offset(event: Event, calendar_date: date) -> int:
    """
    Día del evento (base 1) correspondiente a una fecha calendario.

    El día de inicio es el día 1. Fechas anteriores al inicio se
    fijan en 1 (evento aún no comienza).
    """
    if calendar_date < event.start_date:
        return 1
    return (calendar_date - event.start_date).days + 1


def date_for_offset(event: Event, offset: int) -> date:
    """Fecha calendario del día `offset` del evento"""
    return event.start_date + timedelta(days=offset - 1)


def is_event_active(event: Event, now: datetime) -> bool:
    return now.date() >= event.start_date


def time_until_unlock(event: Event, now: datetime) -> timedelta:
    """Tiempo restante hasta el inicio del día 1 (cero si ya comenzó)"""
    unlock_at = datetime.combine(event.start_date, datetime.min.time(), tzinfo=now.tzinfo)
    remaining = unlock_at - now
    if remaining <= timedelta(0):
        return timedelta(0)
    return remaining


def benefit_status(
    benefit: Benefit,
    event: Event,
    offset: int,
    now: datetime
) -> Optional[BenefitState]:
    """
    Estado de un beneficio para un día del evento.

    Retorna None si `offset` no está en `benefit.days`: los días fuera de
    alcance no tienen estado.

    Prioridad: LOCKED, luego USED/IN_PROGRESS, luego EXPIRED, luego
    AVAILABLE. Un beneficio canjeado ese día nunca aparece como expirado.
    """
    if offset not in benefit.days:
        return None

    day = date_for_offset(event, offset)
    today = now.date()

    if day > today:
        return BenefitState.LOCKED

    window = benefit.window_on(day, now.tzinfo)

    if benefit.used_on(day):
        if window and day == today and window[0] <= now < window[1]:
            return BenefitState.IN_PROGRESS
        return BenefitState.USED

    if window and now >= window[1]:
        return BenefitState.EXPIRED

    return BenefitState.AVAILABLE


def within_window(benefit: Benefit, now: datetime) -> bool:
    """True si el beneficio no tiene horario o `now` cae en [inicio, fin)"""
    window = benefit.window_on(now.date(), now.tzinfo)
    if window is None:
        return True
    return window[0] <= now < window[1]


def benefits_for_day(benefits: List[Benefit], offset: int) -> List[Benefit]:
    """Filtra los beneficios canjeables en el día indicado (antes de calcular estados)"""
    return [b for b in benefits if offset in b.days]
