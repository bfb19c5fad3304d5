"""Modelos Pydantic para la API de verificación"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date, datetime

from services.ticket_verification.services.day_window import BenefitState
from services.ticket_verification.services.pin_guard import AuthorizationState
from services.ticket_verification.services.scan_pipeline import ScanState


# ==================== REQUESTS ====================

class StartScanRequest(BaseModel):
    # False cuando el navegador negó el permiso de cámara
    camera_available: bool = True


class ScanPayloadRequest(BaseModel):
    payload: str


class PinRequest(BaseModel):
    pin: str = Field(..., min_length=1, max_length=12)


# ==================== RESPONSES ====================

class ErrorInfo(BaseModel):
    error: str
    detail: str


class BenefitView(BaseModel):
    id: str
    name: str
    status: BenefitState
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    last_used_date: Optional[date] = None
    can_redeem: bool = False


class HolderView(BaseModel):
    name: str
    initials: str
    email: Optional[str] = None
    phone: Optional[str] = None
    title: Optional[str] = None
    photo_url: Optional[str] = None


class TicketSummary(BaseModel):
    id: str
    event_id: str
    event_name: str
    ticket_type: str
    status: str
    holder: Optional[HolderView] = None  # Solo tras la autorización


class VerificationSessionResponse(BaseModel):
    session_id: str
    scan_state: ScanState
    authorization: AuthorizationState
    failed_pin_attempts: int = 0
    last_error: Optional[ErrorInfo] = None
    ticket: Optional[TicketSummary] = None
    day_offset: Optional[int] = None
    event_active: Optional[bool] = None
    unlocks_in_seconds: Optional[int] = None
    benefits: List[BenefitView] = []
    evaluated_at: datetime


class RedeemAllResponse(BaseModel):
    marked: List[str]
    session: VerificationSessionResponse
