"""Ledger de beneficios de un ticket durante una sesión de verificación"""
from datetime import date, datetime
from typing import List, Optional, Sequence, Tuple

from services.ticket_verification.errors import (
    AlreadyUsedToday,
    BenefitNotFound,
    EventNotStarted,
    NotEligibleToday,
)
from services.ticket_verification.models.ticket import Benefit, Event, TicketStatus
from services.ticket_verification.services.day_window import day_offset, within_window


class BenefitLedger:
    """
    Copia de trabajo (inmutable) de `ticket.benefits`.

    Cada mutación retorna un ledger nuevo; el original nunca cambia, lo que
    permite volver al snapshot previo si la persistencia falla. El ledger no
    persiste nada por sí mismo.
    """

    def __init__(self, benefits: Sequence[Benefit], event: Event):
        self._benefits: Tuple[Benefit, ...] = tuple(benefits)
        self.event = event

    @property
    def benefits(self) -> List[Benefit]:
        return list(self._benefits)

    def get(self, benefit_id: str) -> Benefit:
        for benefit in self._benefits:
            if benefit.id == benefit_id:
                return benefit
        raise BenefitNotFound()

    def _eligible_offset(self, today: date) -> int:
        if today < self.event.start_date:
            raise EventNotStarted()
        return day_offset(self.event, today)

    def mark_used(self, benefit_id: str, today: date) -> "BenefitLedger":
        """Marcar un beneficio como usado hoy"""
        benefit = self.get(benefit_id)
        offset = self._eligible_offset(today)

        if offset not in benefit.days:
            raise NotEligibleToday(
                f'"{benefit.name}" no está disponible el día {offset} del evento.'
            )
        if benefit.used_on(today):
            raise AlreadyUsedToday(f'"{benefit.name}" ya fue utilizado hoy.')

        updated = benefit.model_copy(update={"used": True, "last_used_date": today})
        return BenefitLedger(
            [updated if b.id == benefit_id else b for b in self._benefits],
            self.event
        )

    def mark_all_eligible_today(
        self,
        today: date,
        current_day_offset: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> Tuple["BenefitLedger", List[str]]:
        """
        Marcar todos los beneficios canjeables hoy.

        Las entradas son independientes: una ya usada hoy no bloquea a las
        demás, y las que no corresponden al día quedan intactas. Con `now`,
        también quedan intactas las que están fuera de su ventana horaria.

        Returns:
            (ledger nuevo, ids marcados)
        """
        offset = self._eligible_offset(today)
        if current_day_offset is None:
            current_day_offset = offset

        marked: List[str] = []
        updated: List[Benefit] = []
        for benefit in self._benefits:
            eligible = current_day_offset in benefit.days and not benefit.used_on(today)
            if eligible and (now is None or within_window(benefit, now)):
                updated.append(benefit.model_copy(update={"used": True, "last_used_date": today}))
                marked.append(benefit.id)
            else:
                updated.append(benefit)

        return BenefitLedger(updated, self.event), marked

    def __eq__(self, other):
        if not isinstance(other, BenefitLedger):
            return NotImplemented
        return self._benefits == other._benefits

    def __len__(self):
        return len(self._benefits)


def toggle_ticket_status(current: TicketStatus) -> TicketStatus:
    """active <-> cancelled, reversible libremente por el staff"""
    if current == TicketStatus.ACTIVE:
        return TicketStatus.CANCELLED
    return TicketStatus.ACTIVE
