"""Fixtures compartidas para las pruebas de verificación"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import pytest

from services.ticket_verification.errors import ConcurrentModification, PersistenceFailure, TicketNotFound
from services.ticket_verification.models.ticket import (
    Benefit, Event, EventBenefit, Ticket, TicketHolder, TicketStatus
)
from shared.utils.rate_limiter import limiter


class FakeTicketStore:
    """Almacén en memoria con versionado y fallas inyectables"""

    def __init__(self, tickets: Optional[List[Ticket]] = None, events: Optional[List[Event]] = None):
        self.tickets: Dict[str, Ticket] = {t.id: t for t in tickets or []}
        self.events: Dict[str, Event] = {e.id: e for e in events or []}
        self.writes: List[Dict[str, Any]] = []
        self.fail_writes = False
        self.fail_reads = False

    async def get_ticket_by_id(self, ticket_id: str) -> Optional[Ticket]:
        if self.fail_reads:
            raise ConnectionError("store offline")
        return self.tickets.get(ticket_id)

    async def get_event_by_id(self, event_id: str) -> Optional[Event]:
        if self.fail_reads:
            raise ConnectionError("store offline")
        return self.events.get(event_id)

    async def update_ticket(self, ticket_id: str, fields: Dict[str, Any], expected_version: Optional[int] = None) -> int:
        if self.fail_writes:
            raise PersistenceFailure()
        stored = self.tickets.get(ticket_id)
        if stored is None:
            raise TicketNotFound()
        if expected_version is not None and stored.version != expected_version:
            raise ConcurrentModification()
        self.writes.append(dict(fields))
        updated = stored.model_copy(update={**fields, "version": stored.version + 1})
        self.tickets[ticket_id] = updated
        return updated.version

    def bump_remote(self, ticket_id: str, **fields):
        """Simular una escritura desde otro dispositivo"""
        stored = self.tickets[ticket_id]
        self.tickets[ticket_id] = stored.model_copy(update={**fields, "version": stored.version + 1})


@pytest.fixture(autouse=True)
def disable_rate_limit():
    limiter.enabled = False
    yield
    limiter.enabled = True


@pytest.fixture
def event():
    return Event(
        id="E1",
        name="Congreso Nacional",
        start_date=date(2024, 6, 1),
        end_date=date(2024, 6, 3),
        benefits=[
            EventBenefit(id="lunch", name="Lunch", price=10, days=[1, 2], start_time="12:00", end_time="13:00"),
            EventBenefit(id="kit", name="Welcome Kit", price=5, days=[1]),
        ]
    )


@pytest.fixture
def lunch():
    return Benefit(id="lunch", name="Lunch", days=[1, 2], start_time="12:00", end_time="13:00")


@pytest.fixture
def kit():
    return Benefit(id="kit", name="Welcome Kit", days=[1])


@pytest.fixture
def workshop():
    return Benefit(id="workshop", name="Workshop", days=[2, 3])


@pytest.fixture
def ticket(lunch, kit, workshop):
    return Ticket(
        id="ABC123",
        event_id="E1",
        holder=TicketHolder(name="Ana Pérez", email="ana@example.com", title="Speaker"),
        pin="012345",
        status=TicketStatus.ACTIVE,
        benefits=[lunch, kit, workshop]
    )


@pytest.fixture
def store(ticket, event):
    return FakeTicketStore(tickets=[ticket], events=[event])


@pytest.fixture
def make_store():
    return FakeTicketStore


def at(day: int, hour: int = 12, minute: int = 30) -> datetime:
    """Instante en junio 2024 (hora local del evento)"""
    return datetime(2024, 6, day, hour, minute)


@pytest.fixture
def clock():
    return at
