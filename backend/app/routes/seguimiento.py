from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.deps import get_current_user, require_admin
from app.core.errors import DomainError, http_error
from app.models.user import User
from app.routes.prospectos import FollowUpUpdate
from app.services import payments_service, seguimiento_service
from app.services.email_service import EmailService, get_email_service


router = APIRouter()


class AsesorEmail(BaseModel):
    asesor_id: int
    email: EmailStr


class ConfigUpdate(BaseModel):
    dias_fase_1: Optional[int] = None
    dias_fase_2: Optional[int] = None
    dias_fase_3: Optional[int] = None
    email_recordatorio: Optional[EmailStr] = None
    asesor_emails: Optional[List[AsesorEmail]] = None


class ConfigOut(BaseModel):
    tipo: str
    dias_fase_1: int
    dias_fase_2: int
    dias_fase_3: int
    email_recordatorio: Optional[str] = None
    asesor_emails: Optional[list] = None

    class Config:
        from_attributes = True


@router.get("/config/{tipo}", response_model=ConfigOut)
def get_config(tipo: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        config = seguimiento_service.get_config(db, tipo)
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    return config


@router.put("/config/{tipo}", response_model=ConfigOut, dependencies=[Depends(require_admin)])
def update_config(tipo: str, data: ConfigUpdate, db: Session = Depends(get_db)):
    try:
        config = seguimiento_service.update_config(db, tipo, data.model_dump(exclude_unset=True))
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    db.refresh(config)
    return config


@router.get("/ordenes/{orden}")
def get_order_follow_up(orden: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        lines = payments_service.order_lines(db, orden)
        config = seguimiento_service.get_config(db, "ordenes")
        db.commit()
    except DomainError as e:
        raise http_error(e)
    return seguimiento_service.follow_up_view(lines[0], lines[0].fecha, config)


@router.put("/ordenes/{orden}")
def update_order_follow_up(orden: str, data: FollowUpUpdate, db: Session = Depends(get_db),
                           current_user: User = Depends(get_current_user)):
    """Las fechas y respuestas se guardan en todas las líneas de la orden."""
    try:
        lines = payments_service.order_lines(db, orden)
        config = seguimiento_service.get_config(db, "ordenes")
        seguimiento_service.apply_follow_up_update(lines, lines[0].fecha, config, data.model_dump(exclude_unset=True))
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    db.refresh(lines[0])
    return seguimiento_service.follow_up_view(lines[0], lines[0].fecha, config)


@router.get("/due")
def due_reminders(
    tipo: str = Query("prospectos"),
    fecha: Optional[date] = Query(None, description="Por defecto, hoy"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        reminders = seguimiento_service.due_reminders(db, tipo, fecha)
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    return reminders


@router.post("/digest/run", dependencies=[Depends(require_admin)])
def run_digest(
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    """Envía el resumen diario de seguimientos sin esperar al job programado."""
    result = seguimiento_service.run_daily_digest(db, email_service)
    db.commit()
    return result
