"""
Servicio de pagos por orden.

Una orden tiene tres fuentes de pago: pago inicial/total y flete (uno por orden,
guardados en todas sus líneas) y N cuotas. Los totales se calculan al leer:

    Total Pagado     = inicial + flete + suma(cuotas)
    Total Verificado = lo mismo, solo componentes en 'Verificado'
    Saldo Pendiente  = total de la orden - Total Pagado
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.enums import EstadoVerificacion, StatusFlete
from app.core.errors import NotFoundError, PaymentValidationError
from app.core.serialization_helpers import CENT, parse_date, to_decimal
from app.models.payment_installment import PaymentInstallment
from app.models.sale import Sale
from app.models.user import User
from app.services import delivery_status

logger = logging.getLogger(__name__)

VERIFICADO = EstadoVerificacion.verificado.value
POR_VERIFICAR = EstadoVerificacion.por_verificar.value

# Campos que, si cambian, invalidan la verificación del componente
INICIAL_FIELDS = ("pago_inicial_usd", "fecha_pago_inicial", "banco_receptor_inicial", "referencia_inicial", "monto_inicial_bs")
FLETE_FIELDS = ("flete_a_pagar", "pago_flete_usd", "fecha_flete", "banco_receptor_flete", "referencia_flete", "monto_flete_bs", "flete_gratis")
INSTALLMENT_FIELDS = ("fecha", "pago_cuota_usd", "monto_cuota_usd", "monto_cuota_bs", "banco_receptor_cuota", "referencia")
_DATE_FIELDS = {"fecha_pago_inicial", "fecha_flete", "fecha"}
_MONEY_FIELDS = {
    "pago_inicial_usd", "monto_inicial_bs", "flete_a_pagar", "pago_flete_usd", "monto_flete_bs",
    "pago_cuota_usd", "monto_cuota_usd", "monto_cuota_bs",
}


def order_lines(db: Session, orden: str) -> List[Sale]:
    """Líneas de la orden; la primera (menor id) es la que se lee para campos de orden."""
    lines = db.query(Sale).filter(Sale.orden == orden).order_by(Sale.id.asc()).all()
    if not lines:
        raise NotFoundError(f"Orden {orden} no encontrada")
    return lines


def order_installments(db: Session, orden: str) -> List[PaymentInstallment]:
    return (
        db.query(PaymentInstallment)
        .filter(PaymentInstallment.orden == orden)
        .order_by(PaymentInstallment.installment_number.asc())
        .all()
    )


def summarize(lines: List[Sale], installments: List[PaymentInstallment]) -> Dict[str, Any]:
    total = sum((to_decimal(l.total_usd) for l in lines), Decimal("0"))
    first = lines[0]
    inicial = to_decimal(first.pago_inicial_usd)
    flete = to_decimal(first.pago_flete_usd)
    cuotas = sum((to_decimal(i.pago_cuota_usd) for i in installments), Decimal("0"))

    verificado = Decimal("0")
    if first.estado_verificacion_inicial == VERIFICADO:
        verificado += inicial
    if first.estado_verificacion_flete == VERIFICADO:
        verificado += flete
    verificado += sum(
        (to_decimal(i.pago_cuota_usd) for i in installments if i.estado_verificacion == VERIFICADO),
        Decimal("0"),
    )

    pagado = inicial + flete + cuotas
    return {
        "orden": first.orden,
        "total_order_usd": total.quantize(CENT),
        "pago_inicial_usd": inicial,
        "pago_flete_usd": flete,
        "total_cuotas_usd": cuotas.quantize(CENT),
        "installments_count": len(installments),
        "total_pagado": pagado.quantize(CENT),
        "total_verificado": verificado.quantize(CENT),
        "saldo_pendiente": (total - pagado).quantize(CENT),
    }


def order_payment_summary(db: Session, orden: str) -> Dict[str, Any]:
    return summarize(order_lines(db, orden), order_installments(db, orden))


def _check_not_overpaid(summary: Dict[str, Any], delta: Decimal) -> None:
    if summary["total_pagado"] + delta > summary["total_order_usd"] + CENT:
        raise PaymentValidationError(
            f"El pago excede el total de la orden {summary['orden']}: "
            f"total {summary['total_order_usd']}, pagado {summary['total_pagado']}, nuevo {delta}"
        )


def _coerce(field: str, value):
    if field in _DATE_FIELDS:
        return parse_date(value)
    if field in _MONEY_FIELDS and value is not None:
        amount = to_decimal(value)
        if amount < 0:
            raise PaymentValidationError(f"{field} no puede ser negativo")
        return amount
    return value


def _apply_fields(target, data: Dict[str, Any], allowed) -> bool:
    changed = False
    for field in allowed:
        if field not in data:
            continue
        value = _coerce(field, data[field])
        if getattr(target, field) != value:
            setattr(target, field, value)
            changed = True
    return changed


def update_pago_inicial(db: Session, orden: str, data: Dict[str, Any], user: Optional[User] = None) -> Dict[str, Any]:
    """Actualiza el pago inicial/total en todas las líneas. Cambiar datos vuelve a 'Por verificar'."""
    lines = order_lines(db, orden)
    installments = order_installments(db, orden)
    before = summarize(lines, installments)

    if "pago_inicial_usd" in data:
        new_amount = _coerce("pago_inicial_usd", data["pago_inicial_usd"]) or Decimal("0")
        _check_not_overpaid(before, new_amount - before["pago_inicial_usd"])

    for line in lines:
        if _apply_fields(line, data, INICIAL_FIELDS):
            line.estado_verificacion_inicial = POR_VERIFICAR
            line.notas_verificacion_inicial = None
    db.flush()
    apply_auto_dispatch(db, orden, user=user)
    return order_payment_summary(db, orden)


def update_flete(db: Session, orden: str, data: Dict[str, Any], user: Optional[User] = None) -> Dict[str, Any]:
    lines = order_lines(db, orden)
    installments = order_installments(db, orden)
    before = summarize(lines, installments)

    if "pago_flete_usd" in data:
        new_amount = _coerce("pago_flete_usd", data["pago_flete_usd"]) or Decimal("0")
        _check_not_overpaid(before, new_amount - before["pago_flete_usd"])

    for line in lines:
        if _apply_fields(line, data, FLETE_FIELDS):
            line.estado_verificacion_flete = POR_VERIFICAR
            line.notas_verificacion_flete = None
        if line.pago_flete_usd:
            line.status_flete = StatusFlete.pagado.value
    db.flush()
    apply_auto_dispatch(db, orden, user=user)
    return order_payment_summary(db, orden)


def next_installment_number(db: Session, orden: str) -> int:
    current = db.query(func.max(PaymentInstallment.installment_number)).filter(
        PaymentInstallment.orden == orden
    ).scalar()
    return (current or 0) + 1


def create_installment(db: Session, orden: str, data: Dict[str, Any], user: Optional[User] = None) -> PaymentInstallment:
    """
    Registra una cuota. El número es max+1 de la orden salvo que se indique.
    Un número repetido falla en el UNIQUE(sale_id, installment_number); el caller
    traduce IntegrityError a 409.
    """
    lines = order_lines(db, orden)
    installments = order_installments(db, orden)

    amount = to_decimal(data.get("pago_cuota_usd"))
    if amount <= 0:
        raise PaymentValidationError("El monto de la cuota debe ser mayor a 0")
    _check_not_overpaid(summarize(lines, installments), amount)

    number = data.get("installment_number") or next_installment_number(db, orden)
    installment = PaymentInstallment(
        sale_id=lines[0].id,
        orden=orden,
        installment_number=number,
        pago_cuota_usd=amount,
        estado_verificacion=POR_VERIFICAR,
    )
    _apply_fields(installment, {k: v for k, v in data.items() if k != "pago_cuota_usd"}, INSTALLMENT_FIELDS)
    db.add(installment)
    db.flush()
    logger.info("Cuota %s registrada para orden %s: %s USD", number, orden, amount)

    apply_auto_dispatch(db, orden, user=user)
    return installment


def get_installment(db: Session, installment_id: int) -> PaymentInstallment:
    installment = db.query(PaymentInstallment).filter(PaymentInstallment.id == installment_id).first()
    if not installment:
        raise NotFoundError(f"Cuota {installment_id} no encontrada")
    return installment


def update_installment(db: Session, installment_id: int, data: Dict[str, Any], user: Optional[User] = None) -> PaymentInstallment:
    installment = get_installment(db, installment_id)
    if "pago_cuota_usd" in data:
        amount = to_decimal(data["pago_cuota_usd"])
        if amount <= 0:
            raise PaymentValidationError("El monto de la cuota debe ser mayor a 0")
        summary = order_payment_summary(db, installment.orden)
        _check_not_overpaid(summary, amount - to_decimal(installment.pago_cuota_usd))

    if _apply_fields(installment, data, INSTALLMENT_FIELDS):
        installment.estado_verificacion = POR_VERIFICAR
        installment.notas_verificacion = None
    db.flush()
    apply_auto_dispatch(db, installment.orden, user=user)
    return installment


def delete_installment(db: Session, installment_id: int) -> str:
    installment = get_installment(db, installment_id)
    orden = installment.orden
    db.delete(installment)
    db.flush()
    return orden


def apply_auto_dispatch(db: Session, orden: str, user: Optional[User] = None) -> List[int]:
    """
    Una orden con saldo cubierto (según Total Pagado, no Total Verificado) pasa
    sus líneas en Pendiente / En proceso a 'A despachar'. Retorna los ids movidos.
    """
    lines = order_lines(db, orden)
    summary = summarize(lines, order_installments(db, orden))
    if summary["total_order_usd"] <= 0 or summary["saldo_pendiente"] > 0:
        return []

    moved = []
    for line in lines:
        if delivery_status.parse_estado(line.estado_entrega) in delivery_status.AUTO_DISPATCH_FROM:
            delivery_status.change_status(
                db, line, delivery_status.E.a_despachar, user=user, notes="Saldo cubierto: despacho automático"
            )
            moved.append(line.id)
    if moved:
        logger.info("Orden %s pagada en su totalidad: %s líneas a despacho", orden, len(moved))
    return moved
