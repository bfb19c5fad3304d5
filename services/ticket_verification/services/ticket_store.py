"""Acceso a tickets y eventos para el flujo de verificación"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from typing import Any, Dict, Optional, Protocol
import logging

from shared.database.models import Ticket as TicketRow, Event as EventRow
from services.ticket_verification.errors import (
    ConcurrentModification,
    LookupFailure,
    PersistenceFailure,
    TicketNotFound,
)
from services.ticket_verification.models.ticket import (
    Benefit, Event, Ticket, TicketHolder, TicketStatus
)

logger = logging.getLogger(__name__)


class TicketStore(Protocol):
    """Interfaz mínima del almacén remoto de tickets"""

    async def get_ticket_by_id(self, ticket_id: str) -> Optional[Ticket]:
        ...

    async def get_event_by_id(self, event_id: str) -> Optional[Event]:
        ...

    async def update_ticket(
        self,
        ticket_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None
    ) -> int:
        """
        Mezclar `fields` en el ticket guardado y retornar la nueva versión.

        Con `expected_version`, la escritura solo se aplica si la versión
        guardada coincide (compare-and-swap); si no, ConcurrentModification.
        """
        ...


def serialize_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Convertir campos de dominio a valores JSON/columna"""
    values = {}
    for key, value in fields.items():
        if key == "benefits":
            values["benefits"] = [
                b.model_dump(mode="json") if isinstance(b, Benefit) else b
                for b in value
            ]
        elif key == "status":
            values["status"] = value.value if isinstance(value, TicketStatus) else str(value)
        else:
            raise ValueError(f"Campo no actualizable desde verificación: {key}")
    return values


def ticket_from_row(row: TicketRow) -> Ticket:
    return Ticket(
        id=str(row.id),
        event_id=str(row.event_id),
        holder=TicketHolder(
            name=row.holder_name,
            email=row.holder_email,
            phone=row.holder_phone,
            photo_url=row.holder_photo_url,
            title=row.holder_title
        ),
        pin=row.pin,
        ticket_type=row.ticket_type or "Standard Pass",
        status=row.status,
        benefits=row.benefits or [],
        version=row.version or 0
    )


def event_from_row(row: EventRow) -> Event:
    return Event(
        id=str(row.id),
        name=row.name,
        start_date=row.start_date,
        end_date=row.end_date,
        organizer_id=row.organizer_id,
        benefits=row.benefits or []
    )


class SqlTicketStore:
    """Implementación sobre SQLAlchemy async"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_ticket_by_id(self, ticket_id: str) -> Optional[Ticket]:
        try:
            stmt = select(TicketRow).where(TicketRow.id == ticket_id).execution_options(populate_existing=True)
            result = await self.db.execute(stmt)
            row = result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Error obteniendo ticket {ticket_id}: {type(e).__name__}: {e}")
            raise LookupFailure() from e
        return ticket_from_row(row) if row else None

    async def get_event_by_id(self, event_id: str) -> Optional[Event]:
        try:
            stmt = select(EventRow).where(EventRow.id == event_id)
            result = await self.db.execute(stmt)
            row = result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Error obteniendo evento {event_id}: {type(e).__name__}: {e}")
            raise LookupFailure() from e
        return event_from_row(row) if row else None

    async def update_ticket(
        self,
        ticket_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None
    ) -> int:
        values = serialize_fields(fields)
        try:
            stmt = update(TicketRow).where(TicketRow.id == ticket_id)
            if expected_version is not None:
                stmt = stmt.where(TicketRow.version == expected_version)
            stmt = stmt.values(version=TicketRow.version + 1, **values).execution_options(synchronize_session=False)
            result = await self.db.execute(stmt)

            if result.rowcount == 0:
                await self.db.rollback()
                exists = await self.db.execute(
                    select(TicketRow.version).where(TicketRow.id == ticket_id)
                )
                current = exists.scalar_one_or_none()
                if current is None:
                    raise TicketNotFound()
                logger.warning(
                    f"Conflicto de versión en ticket {ticket_id}: esperada {expected_version}, actual {current}"
                )
                raise ConcurrentModification()

            refreshed = await self.db.execute(
                select(TicketRow.version).where(TicketRow.id == ticket_id)
            )
            new_version = refreshed.scalar_one()
            await self.db.commit()
        except (SQLAlchemyError, OSError) as e:
            await self.db.rollback()
            logger.error(f"Error actualizando ticket {ticket_id}: {type(e).__name__}: {e}")
            raise PersistenceFailure() from e

        return new_version
