"""Sesión de verificación: escaneo -> PIN -> canje"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging
import uuid

from services.ticket_verification.errors import (
    ConcurrentModification,
    InvalidTransition,
    VerificationError,
)
from services.ticket_verification.models.ticket import Event, Ticket, TicketStatus
from services.ticket_verification.models.verification import (
    BenefitView,
    ErrorInfo,
    HolderView,
    TicketSummary,
    VerificationSessionResponse,
)
from services.ticket_verification.services.day_window import (
    BenefitState,
    benefit_status,
    benefits_for_day,
    day_offset,
    is_event_active,
    time_until_unlock,
    within_window,
)
from services.ticket_verification.services.pin_guard import AuthorizationState, PinGuard
from services.ticket_verification.services.redemption import RedemptionTransaction, TicketView
from services.ticket_verification.services.scan_pipeline import ScanPipeline, ScanState
from services.ticket_verification.services.ticket_store import TicketStore

logger = logging.getLogger(__name__)


class VerificationSession:
    """Estado de una sesión de escaneo de un operador (un ticket a la vez)"""

    def __init__(
        self,
        session_id: str,
        operator_id: Optional[str] = None,
        pipeline: Optional[ScanPipeline] = None,
        guard: Optional[PinGuard] = None,
        ticket: Optional[Ticket] = None,
        event: Optional[Event] = None,
        created_at: Optional[datetime] = None
    ):
        self.session_id = session_id
        self.operator_id = operator_id
        self.pipeline = pipeline or ScanPipeline()
        self.guard = guard or PinGuard()
        self.view = TicketView(ticket) if ticket else None
        self.event = event
        self.created_at = created_at or datetime.now(timezone.utc)

    @classmethod
    def new(cls, operator_id: Optional[str] = None) -> "VerificationSession":
        return cls(session_id=uuid.uuid4().hex, operator_id=operator_id)

    @property
    def ticket(self) -> Optional[Ticket]:
        return self.view.ticket if self.view else None

    def _require_loaded(self):
        if self.pipeline.state != ScanState.SUCCESS or self.view is None or self.event is None:
            raise InvalidTransition("Primero escanea un ticket válido.")

    # ==================== ESCANEO ====================

    def start(self, camera_available: bool = True) -> ScanState:
        return self.pipeline.start(camera_available)

    async def submit_payload(self, raw: str, store: TicketStore):
        ticket, event = await self.pipeline.submit(raw, store)
        self.view = TicketView(ticket)
        self.event = event
        self.guard.reset()

    def reset(self):
        """Escanear siguiente: limpia ticket, evento y autorización"""
        self.pipeline.reset()
        self.guard.reset()
        self.view = None
        self.event = None

    # ==================== AUTORIZACIÓN ====================

    def authorize(self, pin: Optional[str]) -> AuthorizationState:
        self._require_loaded()
        state = self.guard.authorize(pin, self.view.ticket)
        logger.info(f"Sesión {self.session_id}: ticket {self.view.ticket.id} autorizado")
        return state

    # ==================== CANJE ====================

    async def _with_reload_on_conflict(self, store: TicketStore, operation):
        try:
            return await operation
        except ConcurrentModification:
            await self.refresh(store)
            raise

    async def redeem(self, benefit_id: str, store: TicketStore, now: datetime) -> Ticket:
        self._require_loaded()
        transaction = RedemptionTransaction(store, self.guard)
        return await self._with_reload_on_conflict(
            store, transaction.redeem_benefit(self.view, self.event, benefit_id, now)
        )

    async def redeem_all_for_today(self, pin: Optional[str], store: TicketStore, now: datetime) -> List[str]:
        self._require_loaded()
        transaction = RedemptionTransaction(store, self.guard)
        return await self._with_reload_on_conflict(
            store, transaction.redeem_all_for_today(self.view, self.event, pin, now)
        )

    async def toggle_status(self, store: TicketStore) -> TicketStatus:
        self._require_loaded()
        transaction = RedemptionTransaction(store, self.guard)
        return await self._with_reload_on_conflict(store, transaction.toggle_status(self.view))

    async def refresh(self, store: TicketStore):
        """Recargar el ticket desde el almacén (estado autoritativo)"""
        if self.view is None:
            return
        try:
            ticket = await store.get_ticket_by_id(self.view.ticket.id)
        except VerificationError as e:
            logger.warning(f"No se pudo recargar ticket {self.view.ticket.id}: {e.code}")
            return
        if ticket is not None:
            self.view.ticket = ticket

    # ==================== VISTA ====================

    def describe(self, now: datetime) -> VerificationSessionResponse:
        """Vista de la sesión con el estado de cada beneficio evaluado en `now`"""
        response = VerificationSessionResponse(
            session_id=self.session_id,
            scan_state=self.pipeline.state,
            authorization=self.guard.state,
            failed_pin_attempts=self.guard.failed_attempts,
            last_error=ErrorInfo(**self.pipeline.last_error) if self.pipeline.last_error else None,
            evaluated_at=now
        )
        if self.view is None or self.event is None:
            return response

        ticket = self.view.ticket
        response.ticket = TicketSummary(
            id=ticket.id,
            event_id=ticket.event_id,
            event_name=self.event.name,
            ticket_type=ticket.ticket_type,
            status=ticket.status.value
        )
        if not self.guard.is_authorized:
            return response

        response.ticket.holder = HolderView(
            name=ticket.holder.name,
            initials=ticket.holder.initials,
            email=ticket.holder.email,
            phone=ticket.holder.phone,
            title=ticket.holder.title,
            photo_url=ticket.holder.photo_url
        )

        offset = day_offset(self.event, now.date())
        active = is_event_active(self.event, now)
        response.day_offset = offset
        response.event_active = active
        response.unlocks_in_seconds = int(time_until_unlock(self.event, now).total_seconds())

        views = []
        for benefit in benefits_for_day(ticket.benefits, offset):
            status = benefit_status(benefit, self.event, offset, now)
            views.append(BenefitView(
                id=benefit.id,
                name=benefit.name,
                status=status,
                start_time=benefit.start_time,
                end_time=benefit.end_time,
                last_used_date=benefit.last_used_date,
                can_redeem=(
                    active
                    and status == BenefitState.AVAILABLE
                    and ticket.status == TicketStatus.ACTIVE
                    and within_window(benefit, now)
                )
            ))
        response.benefits = views
        return response

    # ==================== SERIALIZACIÓN ====================

    def to_snapshot(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "operator_id": self.operator_id,
            "created_at": self.created_at.isoformat(),
            "scan": {
                "state": self.pipeline.state.value,
                "ticket_id": self.pipeline.ticket_id,
                "last_error": self.pipeline.last_error,
            },
            "auth": {
                "state": self.guard.state.value,
                "failed_attempts": self.guard.failed_attempts,
            },
            "ticket": self.ticket.model_dump(mode="json") if self.ticket else None,
            "event": self.event.model_dump(mode="json") if self.event else None,
        }

    @classmethod
    def from_snapshot(cls, data: Dict[str, Any]) -> "VerificationSession":
        scan = data.get("scan") or {}
        auth = data.get("auth") or {}
        return cls(
            session_id=data["session_id"],
            operator_id=data.get("operator_id"),
            pipeline=ScanPipeline(
                state=ScanState(scan.get("state", ScanState.IDLE.value)),
                ticket_id=scan.get("ticket_id"),
                last_error=scan.get("last_error")
            ),
            guard=PinGuard(
                state=AuthorizationState(auth.get("state", AuthorizationState.UNAUTHORIZED.value)),
                failed_attempts=auth.get("failed_attempts", 0)
            ),
            ticket=Ticket.model_validate(data["ticket"]) if data.get("ticket") else None,
            event=Event.model_validate(data["event"]) if data.get("event") else None,
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else None
        )
