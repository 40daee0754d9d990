"""
Vista de verificación de pagos: une pagos iniciales, fletes, cuotas y egresos
pagados en una sola lista para conciliar contra estados de cuenta.
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.clock import today
from app.core.enums import EstadoEgreso, EstadoVerificacion, TipoPago
from app.core.errors import DomainError, InvalidTransition, NotFoundError
from app.core.serialization_helpers import to_decimal
from app.models.egreso import Egreso
from app.models.payment_installment import PaymentInstallment
from app.models.sale import Sale
from app.models.user import User
from app.routes.status_history import create_status_history
from app.services.payments_service import get_installment, order_lines

logger = logging.getLogger(__name__)

POR_VERIFICAR = EstadoVerificacion.por_verificar.value
FINAL_STATES = {EstadoVerificacion.verificado.value, EstadoVerificacion.rechazado.value}


def _first_line_per_order(sales: List[Sale]) -> List[Sale]:
    seen = set()
    result = []
    for sale in sales:
        if sale.orden in seen:
            continue
        seen.add(sale.orden)
        result.append(sale)
    return result


def _inicial_rows(db: Session) -> List[Dict[str, Any]]:
    sales = db.query(Sale).filter(Sale.pago_inicial_usd.isnot(None)).order_by(Sale.id.asc()).all()
    return [
        {
            "tipo_pago": TipoPago.inicial.value,
            "orden": s.orden,
            "entity_id": s.id,
            "nombre": s.nombre,
            "canal": s.canal,
            "fecha": s.fecha_pago_inicial,
            "monto_usd": to_decimal(s.pago_inicial_usd),
            "monto_bs": s.monto_inicial_bs,
            "banco": s.banco_receptor_inicial,
            "referencia": s.referencia_inicial,
            "estado_verificacion": s.estado_verificacion_inicial,
            "notas_verificacion": s.notas_verificacion_inicial,
        }
        for s in _first_line_per_order(sales)
        if to_decimal(s.pago_inicial_usd) > 0
    ]


def _flete_rows(db: Session) -> List[Dict[str, Any]]:
    sales = db.query(Sale).filter(Sale.pago_flete_usd.isnot(None)).order_by(Sale.id.asc()).all()
    return [
        {
            "tipo_pago": TipoPago.flete.value,
            "orden": s.orden,
            "entity_id": s.id,
            "nombre": s.nombre,
            "canal": s.canal,
            "fecha": s.fecha_flete,
            "monto_usd": to_decimal(s.pago_flete_usd),
            "monto_bs": s.monto_flete_bs,
            "banco": s.banco_receptor_flete,
            "referencia": s.referencia_flete,
            "estado_verificacion": s.estado_verificacion_flete,
            "notas_verificacion": s.notas_verificacion_flete,
        }
        for s in _first_line_per_order(sales)
        if to_decimal(s.pago_flete_usd) > 0
    ]


def _cuota_rows(db: Session) -> List[Dict[str, Any]]:
    rows = (
        db.query(PaymentInstallment, Sale)
        .join(Sale, PaymentInstallment.sale_id == Sale.id)
        .all()
    )
    return [
        {
            "tipo_pago": TipoPago.cuota.value,
            "orden": inst.orden,
            "entity_id": inst.id,
            "installment_number": inst.installment_number,
            "nombre": sale.nombre,
            "canal": sale.canal,
            "fecha": inst.fecha,
            "monto_usd": to_decimal(inst.pago_cuota_usd),
            "monto_bs": inst.monto_cuota_bs,
            "banco": inst.banco_receptor_cuota,
            "referencia": inst.referencia,
            "estado_verificacion": inst.estado_verificacion,
            "notas_verificacion": inst.notas_verificacion,
        }
        for inst, sale in rows
    ]


def _egreso_rows(db: Session) -> List[Dict[str, Any]]:
    egresos = db.query(Egreso).filter(Egreso.estado == EstadoEgreso.pagado.value).all()
    return [
        {
            "tipo_pago": TipoPago.egreso.value,
            "orden": None,
            "entity_id": e.id,
            "numero_egreso": e.numero_egreso,
            "nombre": e.beneficiario or e.descripcion,
            "canal": None,
            "fecha": e.fecha_pago,
            "monto_usd": to_decimal(e.monto_pagado if e.monto_pagado is not None else e.monto),
            "monto_bs": None,
            "moneda": e.moneda,
            "banco": e.banco.banco if e.banco else None,
            "referencia": e.referencia_pago,
            "estado_verificacion": e.estado_verificacion,
            "notas_verificacion": e.notas_verificacion,
        }
        for e in egresos
    ]


_SOURCES = {
    TipoPago.inicial.value: _inicial_rows,
    TipoPago.flete.value: _flete_rows,
    TipoPago.cuota.value: _cuota_rows,
    TipoPago.egreso.value: _egreso_rows,
}


def list_payments(
    db: Session,
    banco: Optional[str] = None,
    tipo_pago: Optional[str] = None,
    estado_verificacion: Optional[str] = None,
    orden: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = 20,
    offset: int = 0,
) -> Dict[str, Any]:
    """Filtra y pagina. Orden: fecha ascendente (sin fecha al final) y luego orden."""
    if tipo_pago and tipo_pago not in _SOURCES:
        raise DomainError(f"Tipo de pago inválido: {tipo_pago}")

    rows: List[Dict[str, Any]] = []
    for tipo, source in _SOURCES.items():
        if tipo_pago and tipo != tipo_pago:
            continue
        rows.extend(source(db))

    if banco:
        rows = [r for r in rows if (r["banco"] or "").lower() == banco.lower()]
    if estado_verificacion:
        rows = [r for r in rows if r["estado_verificacion"] == estado_verificacion]
    if orden:
        rows = [r for r in rows if r["orden"] and orden.lower() in r["orden"].lower()]
    if start_date:
        rows = [r for r in rows if r["fecha"] and r["fecha"] >= start_date]
    if end_date:
        rows = [r for r in rows if r["fecha"] and r["fecha"] <= end_date]

    rows.sort(key=lambda r: (r["fecha"] is None, r["fecha"] or date.min, r["orden"] or "", r["entity_id"]))
    return {
        "total": len(rows),
        "limit": limit,
        "offset": offset,
        "items": rows[offset:offset + limit],
    }


def _check_verification(current: str, target: str) -> None:
    if target not in FINAL_STATES:
        raise DomainError(f"Estado de verificación inválido: {target}")
    if current != POR_VERIFICAR:
        raise InvalidTransition(f"El pago ya está en '{current}' y no admite cambios de verificación")


def update_verification(
    db: Session,
    tipo_pago: str,
    estado_verificacion: str,
    orden: Optional[str] = None,
    entity_id: Optional[int] = None,
    notas: Optional[str] = None,
    user: Optional[User] = None,
) -> Dict[str, Any]:
    """Por verificar -> Verificado | Rechazado. Sin reversa."""
    if tipo_pago in {TipoPago.inicial.value, TipoPago.flete.value}:
        if not orden:
            raise DomainError("Debe indicar la orden")
        lines = order_lines(db, orden)
        amount_field, status_field, notes_field = (
            ("pago_inicial_usd", "estado_verificacion_inicial", "notas_verificacion_inicial")
            if tipo_pago == TipoPago.inicial.value
            else ("pago_flete_usd", "estado_verificacion_flete", "notas_verificacion_flete")
        )
        if to_decimal(getattr(lines[0], amount_field)) <= 0:
            raise DomainError(f"La orden {orden} no tiene pago {tipo_pago} registrado")
        current = getattr(lines[0], status_field)
        _check_verification(current, estado_verificacion)
        for line in lines:
            setattr(line, status_field, estado_verificacion)
            setattr(line, notes_field, notas)
        entity_type, history_id = "sale", lines[0].id
    elif tipo_pago == TipoPago.cuota.value:
        if entity_id is None:
            raise DomainError("Debe indicar la cuota")
        installment = get_installment(db, entity_id)
        current = installment.estado_verificacion
        _check_verification(current, estado_verificacion)
        installment.estado_verificacion = estado_verificacion
        installment.notas_verificacion = notas
        entity_type, history_id = "installment", installment.id
    elif tipo_pago == TipoPago.egreso.value:
        if entity_id is None:
            raise DomainError("Debe indicar el egreso")
        egreso = db.query(Egreso).filter(Egreso.id == entity_id).first()
        if not egreso:
            raise NotFoundError(f"Egreso {entity_id} no encontrado")
        current = egreso.estado_verificacion
        _check_verification(current, estado_verificacion)
        egreso.estado_verificacion = estado_verificacion
        egreso.notas_verificacion = notas
        egreso.fecha_verificacion = today()
        entity_type, history_id = "egreso", egreso.id
    else:
        raise DomainError(f"Tipo de pago inválido: {tipo_pago}")

    create_status_history(
        db, entity_type, history_id, current, estado_verificacion, user=user,
        notes=f"Verificación {tipo_pago}" + (f": {notas}" if notas else ""),
    )
    logger.info("Verificación %s (%s): %s -> %s", tipo_pago, orden or entity_id, current, estado_verificacion)
    return {
        "tipo_pago": tipo_pago,
        "orden": orden,
        "entity_id": entity_id,
        "estado_verificacion": estado_verificacion,
    }
