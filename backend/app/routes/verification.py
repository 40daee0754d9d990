from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.deps import get_current_user
from app.core.enums import EstadoVerificacion, TipoPago
from app.core.errors import DomainError, http_error
from app.core.serialization_helpers import serialize_money
from app.models.user import User
from app.services import reconciliation_service


router = APIRouter()


class VerificationUpdate(BaseModel):
    tipo_pago: TipoPago
    estado_verificacion: EstadoVerificacion
    orden: Optional[str] = None
    entity_id: Optional[int] = None
    notas: Optional[str] = None


@router.get("/payments")
def list_payments(
    banco: Optional[str] = Query(None),
    tipo_pago: Optional[TipoPago] = Query(None),
    estado_verificacion: Optional[EstadoVerificacion] = Query(None),
    orden: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    limit: int = Query(20, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Pagos de ventas y egresos en una sola lista para conciliar contra el banco."""
    try:
        result = reconciliation_service.list_payments(
            db,
            banco=banco,
            tipo_pago=tipo_pago.value if tipo_pago else None,
            estado_verificacion=estado_verificacion.value if estado_verificacion else None,
            orden=orden,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
            offset=offset,
        )
    except DomainError as e:
        raise http_error(e)
    result["items"] = [
        {**serialize_money(r), "fecha": r["fecha"].isoformat() if r["fecha"] else None}
        for r in result["items"]
    ]
    return result


@router.put("/payments")
def update_verification(
    data: VerificationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        result = reconciliation_service.update_verification(
            db,
            tipo_pago=data.tipo_pago.value,
            estado_verificacion=data.estado_verificacion.value,
            orden=data.orden,
            entity_id=data.entity_id,
            notas=data.notas,
            user=current_user,
        )
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    return result
