from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.deps import get_current_user, require_admin
from app.core.enums import EstadoEgreso, Frecuencia, Moneda
from app.core.errors import DomainError, http_error
from app.core.serialization_helpers import row_to_dict
from app.models.user import User
from app.services import egresos_service


router = APIRouter()


class EgresoCreate(BaseModel):
    descripcion: str
    monto: Decimal
    moneda: Moneda = Moneda.usd
    fecha: Optional[date] = None
    beneficiario: Optional[str] = None
    tipo: Optional[str] = None
    metodo_pago: Optional[str] = None
    banco_id: Optional[int] = None
    fecha_compromiso: Optional[date] = None
    requiere_aprobacion: bool = False
    notas: Optional[str] = None
    es_recurrente: bool = False
    frecuencia_recurrencia: Optional[Frecuencia] = None
    numero_repeticiones: Optional[int] = None


class EgresoUpdate(BaseModel):
    descripcion: Optional[str] = None
    monto: Optional[Decimal] = None
    moneda: Optional[Moneda] = None
    fecha: Optional[date] = None
    beneficiario: Optional[str] = None
    tipo: Optional[str] = None
    metodo_pago: Optional[str] = None
    banco_id: Optional[int] = None
    fecha_compromiso: Optional[date] = None
    requiere_aprobacion: Optional[bool] = None
    notas: Optional[str] = None


class EgresoNotes(BaseModel):
    notas: Optional[str] = None


class EgresoPayment(BaseModel):
    fecha_pago: Optional[date] = None
    monto_pagado: Optional[Decimal] = None
    referencia_pago: Optional[str] = None
    banco_id: Optional[int] = None
    notas: Optional[str] = None


def _values(data: dict) -> dict:
    return {k: (v.value if hasattr(v, "value") else v) for k, v in data.items()}


@router.get("/")
def list_egresos(
    estado: Optional[EstadoEgreso] = Query(None),
    tipo: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    serie_recurrencia_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = egresos_service.list_egresos(
        db, estado=estado.value if estado else None, tipo=tipo, start_date=start_date, end_date=end_date,
        serie_recurrencia_id=serie_recurrencia_id, limit=limit, offset=offset,
    )
    result["items"] = [row_to_dict(e) for e in result["items"]]
    return result


@router.post("/", status_code=201)
def create_egreso(data: EgresoCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Registra un egreso. Los recurrentes crean solo la primera ocurrencia."""
    try:
        egreso = egresos_service.create_egreso(db, _values(data.model_dump()), user=current_user)
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    db.refresh(egreso)
    return row_to_dict(egreso)


@router.post("/recurrentes/procesar", dependencies=[Depends(require_admin)])
def process_recurring(db: Session = Depends(get_db)):
    """Ejecución manual del job de recurrencia."""
    created = egresos_service.process_recurring_series(db)
    return {"created": created}


@router.get("/series/{serie_id}/preview")
def series_preview(serie_id: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        rows = egresos_service.series_preview(db, serie_id)
    except DomainError as e:
        raise http_error(e)
    return [{**r, "fecha_compromiso": r["fecha_compromiso"].isoformat()} for r in rows]


@router.get("/{egreso_id}")
def get_egreso(egreso_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        return row_to_dict(egresos_service.get_egreso(db, egreso_id))
    except DomainError as e:
        raise http_error(e)


@router.patch("/{egreso_id}")
def update_egreso(
    egreso_id: int,
    data: EgresoUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        egreso = egresos_service.update_egreso(db, egreso_id, _values(data.model_dump(exclude_unset=True)))
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    db.refresh(egreso)
    return row_to_dict(egreso)


@router.post("/{egreso_id}/aprobar", dependencies=[Depends(require_admin)])
def approve_egreso(egreso_id: int, data: EgresoNotes, db: Session = Depends(get_db),
                   current_user: User = Depends(get_current_user)):
    try:
        egreso = egresos_service.approve_egreso(db, egreso_id, data.notas, user=current_user)
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    db.refresh(egreso)
    return row_to_dict(egreso)


@router.post("/{egreso_id}/pagar")
def pay_egreso(egreso_id: int, data: EgresoPayment, db: Session = Depends(get_db),
               current_user: User = Depends(get_current_user)):
    try:
        egreso = egresos_service.register_payment(db, egreso_id, data.model_dump(exclude_unset=True), user=current_user)
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    db.refresh(egreso)
    return row_to_dict(egreso)


@router.post("/{egreso_id}/anular")
def anular_egreso(egreso_id: int, data: EgresoNotes, db: Session = Depends(get_db),
                  current_user: User = Depends(get_current_user)):
    try:
        egreso = egresos_service.anular_egreso(db, egreso_id, data.notas, user=current_user)
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    db.refresh(egreso)
    return row_to_dict(egreso)


@router.delete("/{egreso_id}", dependencies=[Depends(require_admin)])
def delete_egreso(egreso_id: int, db: Session = Depends(get_db)):
    try:
        egreso = egresos_service.get_egreso(db, egreso_id)
    except DomainError as e:
        raise http_error(e)
    db.delete(egreso)
    db.commit()
    return {"deleted": egreso_id}
