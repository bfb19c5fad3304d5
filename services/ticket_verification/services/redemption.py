"""Transacciones de canje: actualización optimista + persistencia + rollback"""
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from services.ticket_verification.errors import (
    ConcurrentModification,
    OperationInProgress,
    OutsideTimeWindow,
    PersistenceFailure,
    TicketCancelled,
)
from services.ticket_verification.models.ticket import Event, Ticket, TicketStatus
from services.ticket_verification.services.day_window import within_window
from services.ticket_verification.services.ledger import BenefitLedger, toggle_ticket_status
from services.ticket_verification.services.pin_guard import PinGuard, confirm_bulk_action
from services.ticket_verification.services.ticket_store import TicketStore

logger = logging.getLogger(__name__)


class TicketView:
    """Vista en memoria del ticket durante la sesión (dueña exclusiva: la sesión)"""

    def __init__(self, ticket: Ticket):
        self.ticket = ticket
        self.pending = False


class RedemptionTransaction:
    """
    Aplica una mutación del ledger/estado del ticket:

    1. Calcula el estado nuevo y lo aplica a la vista (optimista).
    2. Escribe los campos en el almacén remoto, con la versión leída.
    3. Si la escritura falla, restaura el snapshot previo y propaga el error:
       la operación se considera no realizada.
    """

    def __init__(self, store: TicketStore, guard: PinGuard):
        self.store = store
        self.guard = guard

    async def _commit(self, view: TicketView, updated: Ticket, fields: Dict[str, Any]) -> Ticket:
        if view.pending:
            raise OperationInProgress()

        snapshot = view.ticket
        view.ticket = updated
        view.pending = True
        try:
            new_version = await self.store.update_ticket(
                snapshot.id, fields, expected_version=snapshot.version
            )
        except (ConcurrentModification, PersistenceFailure):
            view.ticket = snapshot
            logger.warning(f"Rollback de ticket {snapshot.id}: la escritura no se aplicó")
            raise
        except Exception as e:
            view.ticket = snapshot
            logger.error(f"Error persistiendo ticket {snapshot.id}: {type(e).__name__}: {e}")
            raise PersistenceFailure() from e
        finally:
            view.pending = False

        view.ticket = updated.model_copy(update={"version": new_version})
        return view.ticket

    async def redeem_benefit(
        self,
        view: TicketView,
        event: Event,
        benefit_id: str,
        now: datetime
    ) -> Ticket:
        """Canjear un beneficio para el día calendario de `now`"""
        self.guard.require_authorized()
        ticket = view.ticket
        if ticket.status == TicketStatus.CANCELLED:
            raise TicketCancelled()

        ledger = BenefitLedger(ticket.benefits, event)
        updated_ledger = ledger.mark_used(benefit_id, now.date())
        benefit = ledger.get(benefit_id)
        if not within_window(benefit, now):
            raise OutsideTimeWindow(
                f'"{benefit.name}" solo se puede canjear entre {benefit.start_time} y {benefit.end_time}.'
            )

        result = await self._commit(
            view,
            ticket.model_copy(update={"benefits": updated_ledger.benefits}),
            {"benefits": updated_ledger.benefits}
        )
        logger.info(f"Beneficio {benefit_id} canjeado en ticket {ticket.id} ({now.date().isoformat()})")
        return result

    async def redeem_all_for_today(
        self,
        view: TicketView,
        event: Event,
        pin: Optional[str],
        now: datetime
    ) -> List[str]:
        """
        Canjear todos los beneficios disponibles hoy.

        Acción de mayor riesgo: exige PIN nuevo aunque la sesión ya esté
        autorizada. Si la escritura falla, todo el ledger vuelve al snapshot.

        Returns:
            ids de los beneficios marcados
        """
        self.guard.require_authorized()
        ticket = view.ticket
        confirm_bulk_action(pin, ticket)
        if ticket.status == TicketStatus.CANCELLED:
            raise TicketCancelled()

        ledger = BenefitLedger(ticket.benefits, event)
        updated_ledger, marked = ledger.mark_all_eligible_today(now.date(), now=now)
        if not marked:
            logger.info(f"Ticket {ticket.id}: no hay beneficios pendientes para hoy")
            return []

        await self._commit(
            view,
            ticket.model_copy(update={"benefits": updated_ledger.benefits}),
            {"benefits": updated_ledger.benefits}
        )
        logger.info(f"Ticket {ticket.id}: {len(marked)} beneficio(s) canjeados para hoy")
        return marked

    async def toggle_status(self, view: TicketView) -> TicketStatus:
        """Cancelar o reactivar el ticket"""
        self.guard.require_authorized()
        ticket = view.ticket
        new_status = toggle_ticket_status(ticket.status)

        await self._commit(
            view,
            ticket.model_copy(update={"status": new_status}),
            {"status": new_status}
        )
        logger.info(f"Ticket {ticket.id} ahora está {new_status.value}")
        return new_status
