"""Modelos SQLAlchemy de eventos y tickets"""
from sqlalchemy import Column, String, Integer, Date, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from shared.database.connection import Base


def _new_id() -> str:
    return uuid.uuid4().hex


class Event(Base):
    __tablename__ = "events"

    id = Column(String, primary_key=True, default=_new_id)
    organizer_id = Column(String, nullable=True)
    name = Column(String, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    # Catálogo de beneficios: [{id, name, price, days, start_time, end_time}]
    benefits = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relaciones
    tickets = relationship("Ticket", back_populates="event")


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(String, primary_key=True, default=_new_id)
    event_id = Column(String, ForeignKey("events.id"), nullable=False, index=True)
    holder_name = Column(String, nullable=False)
    holder_email = Column(String, nullable=False, index=True)
    holder_phone = Column(String, nullable=True)
    holder_title = Column(String, nullable=True)
    holder_photo_url = Column(String, nullable=True)
    pin = Column(String(6), nullable=False)  # 6 dígitos, se compara como string
    ticket_type = Column(String, nullable=False, server_default="Standard Pass")
    status = Column(String, nullable=False, server_default="active")  # active, cancelled
    # Ledger de beneficios: [{id, name, used, last_used_date, days, start_time, end_time}]
    benefits = Column(JSON, nullable=False, default=list)
    # Versión para escrituras compare-and-swap entre dispositivos
    version = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relaciones
    event = relationship("Event", back_populates="tickets")
