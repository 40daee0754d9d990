from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.deps import get_current_user
from app.core.errors import DomainError, http_error
from app.core.serialization_helpers import row_to_dict, serialize_money
from app.models.user import User
from app.services import payments_service
from app.services.email_service import EmailService, get_email_service


router = APIRouter()


class PagoInicialUpdate(BaseModel):
    pago_inicial_usd: Optional[Decimal] = None
    fecha_pago_inicial: Optional[date] = None
    banco_receptor_inicial: Optional[str] = None
    referencia_inicial: Optional[str] = None
    monto_inicial_bs: Optional[Decimal] = None


class FleteUpdate(BaseModel):
    flete_a_pagar: Optional[Decimal] = None
    pago_flete_usd: Optional[Decimal] = None
    fecha_flete: Optional[date] = None
    banco_receptor_flete: Optional[str] = None
    referencia_flete: Optional[str] = None
    monto_flete_bs: Optional[Decimal] = None
    flete_gratis: Optional[bool] = None


class InstallmentCreate(BaseModel):
    pago_cuota_usd: Decimal
    installment_number: Optional[int] = None
    fecha: Optional[date] = None
    monto_cuota_usd: Optional[Decimal] = None
    monto_cuota_bs: Optional[Decimal] = None
    banco_receptor_cuota: Optional[str] = None
    referencia: Optional[str] = None


class InstallmentUpdate(BaseModel):
    pago_cuota_usd: Optional[Decimal] = None
    fecha: Optional[date] = None
    monto_cuota_usd: Optional[Decimal] = None
    monto_cuota_bs: Optional[Decimal] = None
    banco_receptor_cuota: Optional[str] = None
    referencia: Optional[str] = None


def _payments_view(db: Session, orden: str) -> dict:
    summary = payments_service.order_payment_summary(db, orden)
    installments = payments_service.order_installments(db, orden)
    first = payments_service.order_lines(db, orden)[0]
    return {
        "summary": serialize_money(summary),
        "inicial": {
            "banco_receptor_inicial": first.banco_receptor_inicial,
            "referencia_inicial": first.referencia_inicial,
            "fecha_pago_inicial": first.fecha_pago_inicial.isoformat() if first.fecha_pago_inicial else None,
            "estado_verificacion": first.estado_verificacion_inicial,
        },
        "flete": {
            "flete_a_pagar": float(first.flete_a_pagar) if first.flete_a_pagar is not None else None,
            "flete_gratis": first.flete_gratis,
            "status_flete": first.status_flete,
            "estado_verificacion": first.estado_verificacion_flete,
        },
        "installments": [row_to_dict(i) for i in installments],
    }


@router.get("/{orden}/payments")
def get_order_payments(orden: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        return _payments_view(db, orden)
    except DomainError as e:
        raise http_error(e)


@router.put("/{orden}/pago-inicial")
def update_pago_inicial(
    orden: str,
    data: PagoInicialUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        payments_service.update_pago_inicial(db, orden, data.model_dump(exclude_unset=True), user=current_user)
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    return _payments_view(db, orden)


@router.put("/{orden}/flete")
def update_flete(
    orden: str,
    data: FleteUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        payments_service.update_flete(db, orden, data.model_dump(exclude_unset=True), user=current_user)
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    return _payments_view(db, orden)


@router.post("/{orden}/installments", status_code=201)
def create_installment(
    orden: str,
    data: InstallmentCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    email_service: EmailService = Depends(get_email_service),
):
    """Registra una cuota y notifica al cliente el saldo restante."""
    try:
        installment = payments_service.create_installment(
            db, orden, data.model_dump(exclude_unset=True), user=current_user
        )
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail=f"La cuota {data.installment_number} ya existe para la orden {orden}")

    db.refresh(installment)
    summary = payments_service.order_payment_summary(db, orden)
    first = payments_service.order_lines(db, orden)[0]
    if first.email:
        background_tasks.add_task(
            email_service.send_payment_notification,
            orden, first.nombre, first.email, first.canal,
            float(installment.pago_cuota_usd), float(summary["saldo_pendiente"]),
        )
    return {"installment": row_to_dict(installment), "summary": serialize_money(summary)}


@router.put("/installments/{installment_id}")
def update_installment(
    installment_id: int,
    data: InstallmentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        installment = payments_service.update_installment(
            db, installment_id, data.model_dump(exclude_unset=True), user=current_user
        )
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    db.refresh(installment)
    return row_to_dict(installment)


@router.delete("/installments/{installment_id}")
def delete_installment(
    installment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        orden = payments_service.delete_installment(db, installment_id)
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    return {"deleted": installment_id, "summary": serialize_money(payments_service.order_payment_summary(db, orden))}
