"""
Servicio de egresos: registro, aprobación, pago, anulación y generación
incremental de series recurrentes.
"""
import logging
import uuid
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.clock import today as local_today
from app.core.enums import EstadoEgreso, EstadoVerificacion, Frecuencia, Moneda
from app.core.errors import DomainError, InvalidTransition, NotFoundError
from app.core.sequence_service import next_numero_egreso
from app.core.serialization_helpers import parse_date, to_decimal
from app.models.egreso import Egreso
from app.models.user import User
from app.routes.status_history import create_status_history
from app.services.recurrence import next_occurrence_date, series_dates

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "fecha", "descripcion", "beneficiario", "monto", "moneda", "tipo", "metodo_pago",
    "banco_id", "fecha_compromiso", "requiere_aprobacion", "notas",
)
# Campos que se copian de una ocurrencia a la siguiente
TEMPLATE_FIELDS = (
    "descripcion", "beneficiario", "monto", "moneda", "tipo", "metodo_pago", "banco_id",
    "requiere_aprobacion", "notas", "es_recurrente", "frecuencia_recurrencia",
    "serie_recurrencia_id", "numero_repeticiones",
)


def _validate(data: Dict[str, Any]) -> None:
    if "monto" in data and to_decimal(data["monto"]) <= 0:
        raise DomainError("El monto del egreso debe ser mayor a 0")
    if "moneda" in data and data["moneda"] not in {m.value for m in Moneda}:
        raise DomainError(f"Moneda inválida: {data['moneda']}")
    if "descripcion" in data and not (data["descripcion"] or "").strip():
        raise DomainError("La descripción es obligatoria")


def _apply(egreso: Egreso, data: Dict[str, Any]) -> None:
    for field in EDITABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field in {"fecha", "fecha_compromiso"}:
            value = parse_date(value)
        elif field == "monto":
            value = to_decimal(value)
        setattr(egreso, field, value)


def get_egreso(db: Session, egreso_id: int) -> Egreso:
    egreso = db.query(Egreso).filter(Egreso.id == egreso_id).first()
    if not egreso:
        raise NotFoundError(f"Egreso {egreso_id} no encontrado")
    return egreso


def create_egreso(db: Session, data: Dict[str, Any], user: Optional[User] = None) -> Egreso:
    """
    Crea un egreso. Si es recurrente solo se crea la ocurrencia 1; las siguientes
    las genera el job diario (process_recurring_series).
    """
    data = {k: v for k, v in data.items() if v is not None}
    _validate({"monto": data.get("monto"), "descripcion": data.get("descripcion"), **data})

    egreso = Egreso(
        numero_egreso=next_numero_egreso(db),
        fecha=parse_date(data.get("fecha")) or local_today(),
        moneda=data.get("moneda") or Moneda.usd.value,
        estado=EstadoEgreso.registrado.value,
        estado_verificacion=EstadoVerificacion.por_verificar.value,
    )
    _apply(egreso, {k: v for k, v in data.items() if k != "fecha"})

    if data.get("es_recurrente"):
        frecuencia = data.get("frecuencia_recurrencia")
        repeticiones = data.get("numero_repeticiones")
        if frecuencia not in {f.value for f in Frecuencia}:
            raise DomainError(f"Frecuencia de recurrencia inválida: {frecuencia}")
        if not repeticiones or int(repeticiones) < 1:
            raise DomainError("numero_repeticiones debe ser al menos 1")
        if not egreso.fecha_compromiso:
            raise DomainError("Un egreso recurrente requiere fecha_compromiso")
        egreso.es_recurrente = True
        egreso.frecuencia_recurrencia = frecuencia
        egreso.numero_repeticiones = int(repeticiones)
        egreso.serie_recurrencia_id = str(uuid.uuid4())
        egreso.numero_en_serie = 1

    db.add(egreso)
    db.flush()
    create_status_history(db, "egreso", egreso.id, None, egreso.estado, user=user, notes="Egreso registrado")
    logger.info("Egreso %s registrado por %s %s", egreso.numero_egreso, egreso.monto, egreso.moneda)
    return egreso


def update_egreso(db: Session, egreso_id: int, data: Dict[str, Any]) -> Egreso:
    egreso = get_egreso(db, egreso_id)
    if egreso.estado not in {EstadoEgreso.registrado.value, EstadoEgreso.aprobado.value}:
        raise InvalidTransition(f"No se puede editar un egreso en estado '{egreso.estado}'")
    _validate(data)
    _apply(egreso, data)
    db.flush()
    return egreso


def _set_estado(db: Session, egreso: Egreso, nuevo: EstadoEgreso, user: Optional[User], notes: Optional[str] = None):
    old = egreso.estado
    egreso.estado = nuevo.value
    create_status_history(db, "egreso", egreso.id, old, nuevo.value, user=user, notes=notes)


def approve_egreso(db: Session, egreso_id: int, notas: Optional[str] = None, user: Optional[User] = None) -> Egreso:
    egreso = get_egreso(db, egreso_id)
    if egreso.estado != EstadoEgreso.registrado.value:
        raise InvalidTransition(f"Solo se aprueban egresos registrados (estado actual: {egreso.estado})")
    egreso.fecha_aprobacion = local_today()
    egreso.notas_aprobacion = notas
    _set_estado(db, egreso, EstadoEgreso.aprobado, user, notas)
    return egreso


def register_payment(db: Session, egreso_id: int, data: Dict[str, Any], user: Optional[User] = None) -> Egreso:
    """Marca el egreso como pagado. El pago queda 'Por verificar'."""
    egreso = get_egreso(db, egreso_id)
    if egreso.estado == EstadoEgreso.registrado.value and egreso.requiere_aprobacion:
        raise InvalidTransition("El egreso requiere aprobación antes de pagarse")
    if egreso.estado not in {EstadoEgreso.registrado.value, EstadoEgreso.aprobado.value}:
        raise InvalidTransition(f"No se puede pagar un egreso en estado '{egreso.estado}'")

    monto_pagado = to_decimal(data.get("monto_pagado")) if data.get("monto_pagado") is not None else egreso.monto
    if to_decimal(monto_pagado) <= 0:
        raise DomainError("El monto pagado debe ser mayor a 0")

    egreso.fecha_pago = parse_date(data.get("fecha_pago")) or local_today()
    egreso.monto_pagado = monto_pagado
    egreso.referencia_pago = data.get("referencia_pago")
    if data.get("banco_id") is not None:
        egreso.banco_id = data["banco_id"]
    egreso.estado_verificacion = EstadoVerificacion.por_verificar.value
    egreso.fecha_verificacion = None
    egreso.notas_verificacion = None
    _set_estado(db, egreso, EstadoEgreso.pagado, user, data.get("notas"))
    return egreso


def anular_egreso(db: Session, egreso_id: int, notas: Optional[str] = None, user: Optional[User] = None) -> Egreso:
    egreso = get_egreso(db, egreso_id)
    if egreso.estado in {EstadoEgreso.anulado.value, EstadoEgreso.pagado.value}:
        raise InvalidTransition(f"No se puede anular un egreso en estado '{egreso.estado}'")
    _set_estado(db, egreso, EstadoEgreso.anulado, user, notas)
    return egreso


def list_egresos(
    db: Session,
    estado: Optional[str] = None,
    tipo: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    serie_recurrencia_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Dict[str, Any]:
    query = db.query(Egreso)
    if estado:
        query = query.filter(Egreso.estado == estado)
    if tipo:
        query = query.filter(Egreso.tipo == tipo)
    if start_date:
        query = query.filter(Egreso.fecha >= start_date)
    if end_date:
        query = query.filter(Egreso.fecha <= end_date)
    if serie_recurrencia_id:
        query = query.filter(Egreso.serie_recurrencia_id == serie_recurrencia_id)
    total = query.count()
    items = query.order_by(Egreso.fecha.desc(), Egreso.numero_egreso.desc()).offset(offset).limit(limit).all()
    return {"total": total, "limit": limit, "offset": offset, "items": items}


def series_preview(db: Session, serie_recurrencia_id: str) -> List[Dict[str, Any]]:
    """Calendario completo de la serie, marcando qué ocurrencias ya existen."""
    occurrences = (
        db.query(Egreso)
        .filter(Egreso.serie_recurrencia_id == serie_recurrencia_id)
        .order_by(Egreso.numero_en_serie.asc())
        .all()
    )
    if not occurrences:
        raise NotFoundError(f"Serie {serie_recurrencia_id} no encontrada")
    first = occurrences[0]
    existing = {e.numero_en_serie: e for e in occurrences}
    dates = series_dates(first.fecha_compromiso, first.frecuencia_recurrencia, first.numero_repeticiones)
    return [
        {
            "numero_en_serie": k,
            "fecha_compromiso": d,
            "egreso_id": existing[k].id if k in existing else None,
            "estado": existing[k].estado if k in existing else None,
        }
        for k, d in enumerate(dates, start=1)
    ]


def _clone_next(db: Session, latest: Egreso, next_date: date, today: date) -> Egreso:
    clone = Egreso(
        numero_egreso=next_numero_egreso(db),
        fecha=today,
        fecha_compromiso=next_date,
        numero_en_serie=latest.numero_en_serie + 1,
        estado=EstadoEgreso.registrado.value,
        estado_verificacion=EstadoVerificacion.por_verificar.value,
    )
    for field in TEMPLATE_FIELDS:
        setattr(clone, field, getattr(latest, field))
    db.add(clone)
    db.flush()
    create_status_history(
        db, "egreso", clone.id, None, clone.estado,
        notes=f"Ocurrencia {clone.numero_en_serie}/{clone.numero_repeticiones} de serie {clone.serie_recurrencia_id}",
    )
    return clone


def process_recurring_series(db: Session, today: Optional[date] = None) -> List[int]:
    """
    Para cada serie que no ha llegado a numero_repeticiones, crea la ocurrencia
    k+1 a partir de la última si su fecha calculada es posterior a hoy.
    Una serie cuya última ocurrencia está anulada se detiene.
    Commit por serie; un duplicado (serie, número) se registra y se omite.
    """
    today = today or local_today()
    pending = (
        db.query(
            Egreso.serie_recurrencia_id,
            func.max(Egreso.numero_en_serie),
            func.max(Egreso.numero_repeticiones),
        )
        .filter(Egreso.es_recurrente == True, Egreso.serie_recurrencia_id.isnot(None))
        .group_by(Egreso.serie_recurrencia_id)
        .having(func.max(Egreso.numero_en_serie) < func.max(Egreso.numero_repeticiones))
        .all()
    )

    created = []
    for serie_id, max_numero, _ in pending:
        latest = db.query(Egreso).filter(
            Egreso.serie_recurrencia_id == serie_id,
            Egreso.numero_en_serie == max_numero,
        ).first()
        if not latest or not latest.fecha_compromiso or latest.estado == EstadoEgreso.anulado.value:
            continue
        next_date = next_occurrence_date(latest.fecha_compromiso, latest.frecuencia_recurrencia)
        if next_date <= today:
            continue
        try:
            clone = _clone_next(db, latest, next_date, today)
            db.commit()
            created.append(clone.id)
            logger.info(
                "Serie %s: ocurrencia %s creada para %s", serie_id, clone.numero_en_serie, next_date
            )
        except IntegrityError:
            db.rollback()
            logger.warning("Serie %s: ocurrencia %s ya existe, se omite", serie_id, max_numero + 1)
    return created
