"""Modelos de dominio: ticket, beneficios y evento"""
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Tuple
from datetime import date, datetime, time, tzinfo
from enum import Enum
import re


HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class TicketStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def _coerce_date(value):
    # Fechas guardadas como ISO datetime ("2024-06-01T00:00:00") o datetime
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and len(value) > 10:
        return value[:10]
    return value


class Benefit(BaseModel):
    """Entrada del ledger de beneficios embebida en el ticket"""
    id: str
    name: str
    used: bool = False
    last_used_date: Optional[date] = None
    days: List[int] = Field(default_factory=lambda: [1])
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    class Config:
        frozen = True

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def blank_time_is_none(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        if not HHMM_PATTERN.match(v.strip()):
            raise ValueError(f"Hora inválida (se espera HH:mm): {v}")
        return v.strip()

    @field_validator("days", mode="before")
    @classmethod
    def default_day_one(cls, v):
        # En la emisión, un beneficio sin días queda asignado al día 1
        if not v:
            return [1]
        return sorted({int(d) for d in v})

    @field_validator("last_used_date", mode="before")
    @classmethod
    def parse_last_used(cls, v):
        if v == "":
            return None
        return _coerce_date(v)

    @model_validator(mode="after")
    def window_within_one_day(self):
        # Ventanas que cruzan la medianoche no están soportadas
        if self.has_time_window and _parse_hhmm(self.end_time) <= _parse_hhmm(self.start_time):
            raise ValueError(
                f"La hora de término ({self.end_time}) debe ser posterior a la de inicio ({self.start_time})"
            )
        return self

    @property
    def has_time_window(self) -> bool:
        return self.start_time is not None and self.end_time is not None

    def window_on(self, day: date, tz: Optional[tzinfo] = None) -> Optional[Tuple[datetime, datetime]]:
        """Ventana [inicio, fin) del beneficio en un día calendario concreto"""
        if not self.has_time_window:
            return None
        start = datetime.combine(day, _parse_hhmm(self.start_time), tzinfo=tz)
        end = datetime.combine(day, _parse_hhmm(self.end_time), tzinfo=tz)
        return start, end

    def used_on(self, day: date) -> bool:
        return self.used and self.last_used_date == day


class EventBenefit(BaseModel):
    """Definición de beneficio a nivel de evento (solo referencia)"""
    id: str
    name: str
    price: float = 0
    days: List[int] = Field(default_factory=lambda: [1])
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def blank_time_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class Event(BaseModel):
    id: str
    name: str
    start_date: date
    end_date: Optional[date] = None
    organizer_id: Optional[str] = None
    benefits: List[EventBenefit] = []

    class Config:
        frozen = True

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def parse_dates(cls, v):
        return _coerce_date(v)


class TicketHolder(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None
    photo_url: Optional[str] = None
    title: Optional[str] = None

    class Config:
        frozen = True

    @property
    def initials(self) -> str:
        return "".join(part[0] for part in self.name.split() if part).upper()


class Ticket(BaseModel):
    id: str
    event_id: str
    holder: TicketHolder
    pin: str
    ticket_type: str = "Standard Pass"
    status: TicketStatus = TicketStatus.ACTIVE
    benefits: List[Benefit] = []
    version: int = 0

    class Config:
        frozen = True
