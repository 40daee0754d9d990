from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.deps import get_current_user
from app.models.sale import Sale
from app.models.status_history import StatusHistory
from app.models.user import User

router = APIRouter()

ENTITY_TYPES = {"sale", "installment", "egreso", "prospecto"}


class HistoryEntry(BaseModel):
    id: int
    entity_type: str
    entity_id: int
    old_status: Optional[str] = None
    new_status: str
    user_email: str
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


def create_status_history(
    db: Session,
    entity_type: str,
    entity_id: int,
    old_status: Optional[str],
    new_status: str,
    user: Optional[User] = None,
    notes: Optional[str] = None,
) -> StatusHistory:
    """Registra un cambio de estado. No hace commit; user=None es el sistema (jobs, auto-despacho)."""
    entry = StatusHistory(
        entity_type=entity_type,
        entity_id=entity_id,
        old_status=old_status,
        new_status=new_status,
        user_id=user.id if user else None,
        user_email=user.email if user else "system",
        notes=notes[:500] if notes else None,
    )
    db.add(entry)
    return entry


def _newest_first(query):
    return query.order_by(StatusHistory.created_at.desc(), StatusHistory.id.desc())


@router.get("/orden/{orden}", response_model=List[HistoryEntry])
def get_order_history(
    orden: str,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Cambios de estado de todas las líneas de una orden"""
    sale_ids = [row[0] for row in db.query(Sale.id).filter(Sale.orden == orden).all()]
    if not sale_ids:
        raise HTTPException(status_code=404, detail=f"Orden {orden} no encontrada")
    query = db.query(StatusHistory).filter(
        StatusHistory.entity_type == "sale",
        StatusHistory.entity_id.in_(sale_ids),
    )
    return _newest_first(query).limit(limit).all()


@router.get("/{entity_type}/{entity_id}", response_model=List[HistoryEntry])
def get_status_history(
    entity_type: str,
    entity_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if entity_type not in ENTITY_TYPES:
        raise HTTPException(status_code=400, detail=f"Tipo de entidad inválido: {entity_type}")
    query = db.query(StatusHistory).filter(
        StatusHistory.entity_type == entity_type,
        StatusHistory.entity_id == entity_id,
    )
    return _newest_first(query).all()
