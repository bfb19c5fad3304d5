"""
Tests del almacén SQL de tickets (SQLite + aiosqlite).

Cobertura:
- Lectura de ticket/evento y conversión a modelos de dominio
- Escritura compare-and-swap con versión
- Errores de base de datos traducidos a errores del dominio
"""
from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from shared.database import connection
from shared.database.connection import close_db, create_tables, init_db, to_async_url
from shared.database.models import Event as EventRow, Ticket as TicketRow
from services.ticket_verification.errors import (
    ConcurrentModification,
    LookupFailure,
    PersistenceFailure,
    TicketNotFound,
)
from services.ticket_verification.models.ticket import Benefit, TicketStatus
from services.ticket_verification.services.ticket_store import SqlTicketStore, serialize_fields


@pytest.fixture
async def db(tmp_path):
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'verification.db'}")
    await create_tables()

    async with connection.async_session_maker() as session:
        session.add(EventRow(
            id="E1",
            name="Congreso Nacional",
            start_date=date(2024, 6, 1),
            benefits=[{"id": "kit", "name": "Welcome Kit", "price": 5, "days": [1]}]
        ))
        session.add(TicketRow(
            id="ABC123",
            event_id="E1",
            holder_name="Ana Pérez",
            holder_email="ana@example.com",
            pin="012345",
            ticket_type="Standard Pass",
            status="active",
            benefits=[
                {"id": "kit", "name": "Welcome Kit", "used": False, "days": [1]},
                {"id": "lunch", "name": "Lunch", "days": [1, 2], "start_time": "12:00", "end_time": "13:00"},
            ]
        ))
        await session.commit()

    yield connection.async_session_maker
    await close_db()


def test_to_async_url():
    assert to_async_url("postgresql://u:p@host/db?sslmode=require") == "postgresql+asyncpg://u:p@host/db"
    assert to_async_url("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"


def test_serialize_rejects_unknown_fields():
    with pytest.raises(ValueError):
        serialize_fields({"pin": "000000"})


def test_serialize_benefits_as_json():
    values = serialize_fields({
        "benefits": [Benefit(id="kit", name="Kit", used=True, last_used_date=date(2024, 6, 1))],
        "status": TicketStatus.CANCELLED,
    })
    assert values["benefits"][0]["last_used_date"] == "2024-06-01"
    assert values["status"] == "cancelled"


async def test_reads_ticket_and_event(db):
    async with db() as session:
        store = SqlTicketStore(session)
        ticket = await store.get_ticket_by_id("ABC123")
        event = await store.get_event_by_id(ticket.event_id)

    assert ticket.pin == "012345"
    assert ticket.holder.name == "Ana Pérez"
    assert ticket.version == 0
    assert ticket.benefits[1].start_time == "12:00"
    assert event.start_date == date(2024, 6, 1)
    assert event.benefits[0].id == "kit"


async def test_missing_rows_return_none(db):
    async with db() as session:
        store = SqlTicketStore(session)
        assert await store.get_ticket_by_id("NOPE") is None
        assert await store.get_event_by_id("NOPE") is None


async def test_update_merges_fields_and_bumps_version(db):
    async with db() as session:
        store = SqlTicketStore(session)
        ticket = await store.get_ticket_by_id("ABC123")
        used = [ticket.benefits[0].model_copy(update={"used": True, "last_used_date": date(2024, 6, 1)}), ticket.benefits[1]]

        new_version = await store.update_ticket("ABC123", {"benefits": used}, expected_version=0)

    assert new_version == 1
    async with db() as session:
        reloaded = await SqlTicketStore(session).get_ticket_by_id("ABC123")
    assert reloaded.benefits[0].used_on(date(2024, 6, 1))
    assert reloaded.status == TicketStatus.ACTIVE
    assert reloaded.version == 1


async def test_stale_version_is_rejected(db):
    async with db() as first, db() as second:
        await SqlTicketStore(first).update_ticket("ABC123", {"status": TicketStatus.CANCELLED}, expected_version=0)
        with pytest.raises(ConcurrentModification):
            await SqlTicketStore(second).update_ticket("ABC123", {"status": TicketStatus.ACTIVE}, expected_version=0)

    async with db() as session:
        reloaded = await SqlTicketStore(session).get_ticket_by_id("ABC123")
    assert reloaded.status == TicketStatus.CANCELLED


async def test_update_missing_ticket(db):
    async with db() as session:
        with pytest.raises(TicketNotFound):
            await SqlTicketStore(session).update_ticket("NOPE", {"status": TicketStatus.CANCELLED}, expected_version=0)


class BrokenSession:
    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection reset"))

    async def rollback(self):
        pass


async def test_read_error_becomes_lookup_failure():
    with pytest.raises(LookupFailure):
        await SqlTicketStore(BrokenSession()).get_ticket_by_id("ABC123")


async def test_write_error_becomes_persistence_failure():
    with pytest.raises(PersistenceFailure):
        await SqlTicketStore(BrokenSession()).update_ticket("ABC123", {"status": TicketStatus.CANCELLED})
