from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.deps import get_current_user, require_admin
from app.core.errors import DomainError, http_error
from app.core.serialization_helpers import row_to_dict
from app.models.cashea import CasheaAutomaticDownload
from app.models.user import User
from app.services import cashea_service
from app.services.cashea_service import CasheaClient

router = APIRouter()


def get_cashea_client() -> CasheaClient:
    return CasheaClient()


class DownloadRequest(BaseModel):
    start_date: datetime
    end_date: datetime


class AutomationUpdate(BaseModel):
    enabled: Optional[bool] = None
    frequency: Optional[str] = None


class AutomationOut(BaseModel):
    enabled: bool
    frequency: str

    class Config:
        from_attributes = True


@router.post("/download")
def download_orders(
    data: DownloadRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    client: CasheaClient = Depends(get_cashea_client),
):
    """Descarga manual de órdenes Cashea para un rango de fechas."""
    if data.end_date <= data.start_date:
        raise HTTPException(status_code=400, detail="end_date debe ser posterior a start_date")
    result = cashea_service.download_orders(db, data.start_date, data.end_date, client)
    if not result["success"]:
        raise HTTPException(status_code=502, detail=result["message"])
    return result


@router.get("/automation", response_model=AutomationOut)
def get_automation(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    config = cashea_service.get_automation_config(db)
    db.commit()
    return config


@router.put("/automation", response_model=AutomationOut, dependencies=[Depends(require_admin)])
def update_automation(data: AutomationUpdate, request: Request, db: Session = Depends(get_db)):
    """Activa o cambia la frecuencia de la descarga automática y reprograma el job."""
    try:
        config = cashea_service.update_automation_config(db, enabled=data.enabled, frequency=data.frequency)
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    db.refresh(config)

    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.reschedule_cashea()
    return config


@router.get("/downloads")
def list_downloads(
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rows = db.query(CasheaAutomaticDownload).order_by(CasheaAutomaticDownload.id.desc()).limit(limit).all()
    return [row_to_dict(r) for r in rows]
