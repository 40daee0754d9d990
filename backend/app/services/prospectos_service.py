import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.clock import today as local_today
from app.core.enums import EstadoProspecto
from app.core.errors import DomainError, InvalidTransition, NotFoundError
from app.core.sequence_service import next_prospecto_code
from app.core.serialization_helpers import parse_date, to_decimal
from app.models.prospecto import Prospecto
from app.models.sale import Sale
from app.models.user import User
from app.routes.status_history import create_status_history
from app.services import sales_service

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "nombre", "telefono", "cedula", "email", "canal", "asesor_id", "fecha_entrega", "total_usd",
    "products", "notas",
    "direccion_facturacion_pais", "direccion_facturacion_estado", "direccion_facturacion_ciudad",
    "direccion_facturacion_direccion", "direccion_facturacion_urbanizacion", "direccion_facturacion_referencia",
)


def _apply(prospecto: Prospecto, data: Dict[str, Any]) -> None:
    for field in EDITABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "fecha_entrega":
            value = parse_date(value)
        elif field == "total_usd" and value is not None:
            value = to_decimal(value)
        setattr(prospecto, field, value)
    if not (prospecto.nombre or "").strip():
        raise DomainError("nombre es obligatorio")
    if not (prospecto.telefono or "").strip():
        raise DomainError("telefono es obligatorio")


def get_prospecto(db: Session, prospecto_id: int) -> Prospecto:
    prospecto = db.query(Prospecto).filter(Prospecto.id == prospecto_id).first()
    if not prospecto:
        raise NotFoundError(f"Prospecto {prospecto_id} no encontrado")
    return prospecto


def create_prospecto(db: Session, data: Dict[str, Any], user: Optional[User] = None) -> Prospecto:
    prospecto = Prospecto(
        prospecto=next_prospecto_code(db),
        estado_prospecto=EstadoProspecto.activo.value,
        fecha_creacion=parse_date(data.get("fecha_creacion")) or local_today(),
    )
    _apply(prospecto, data)
    db.add(prospecto)
    db.flush()
    create_status_history(db, "prospecto", prospecto.id, None, prospecto.estado_prospecto, user=user)
    return prospecto


def update_prospecto(db: Session, prospecto_id: int, data: Dict[str, Any]) -> Prospecto:
    prospecto = get_prospecto(db, prospecto_id)
    _apply(prospecto, data)
    db.flush()
    return prospecto


def set_estado(db: Session, prospecto_id: int, estado: str, notas: Optional[str] = None,
               user: Optional[User] = None) -> Prospecto:
    """Activo <-> Perdido. Convertido solo se alcanza con convert_to_order."""
    prospecto = get_prospecto(db, prospecto_id)
    if estado not in {EstadoProspecto.activo.value, EstadoProspecto.perdido.value}:
        raise DomainError(f"Estado inválido: {estado}")
    if prospecto.estado_prospecto == EstadoProspecto.convertido.value:
        raise InvalidTransition("El prospecto ya fue convertido")
    old = prospecto.estado_prospecto
    if old != estado:
        prospecto.estado_prospecto = estado
        create_status_history(db, "prospecto", prospecto.id, old, estado, user=user, notes=notas)
    return prospecto


def list_prospectos(
    db: Session,
    estado: Optional[str] = None,
    asesor_id: Optional[int] = None,
    search: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Dict[str, Any]:
    query = db.query(Prospecto)
    if estado:
        query = query.filter(Prospecto.estado_prospecto == estado)
    if asesor_id is not None:
        query = query.filter(Prospecto.asesor_id == asesor_id)
    if search:
        term = f"%{search}%"
        query = query.filter(or_(
            Prospecto.nombre.ilike(term), Prospecto.telefono.ilike(term), Prospecto.prospecto.ilike(term)
        ))
    total = query.count()
    items = query.order_by(Prospecto.id.desc()).offset(offset).limit(limit).all()
    return {"total": total, "limit": limit, "offset": offset, "items": items}


def convert_to_order(db: Session, prospecto_id: int, data: Dict[str, Any], user: Optional[User] = None) -> List[Sale]:
    """Crea la orden a partir de los productos del prospecto y lo marca Convertido."""
    prospecto = get_prospecto(db, prospecto_id)
    if prospecto.estado_prospecto != EstadoProspecto.activo.value:
        raise InvalidTransition(f"Solo se convierten prospectos activos (estado: {prospecto.estado_prospecto})")

    products = data.get("products") or [
        {
            "product": p.get("producto") or p.get("product"),
            "sku": p.get("sku"),
            "cantidad": p.get("cantidad", 1),
            "total_usd": p.get("total_usd"),
        }
        for p in (prospecto.products or [])
    ]
    order_data = {
        "nombre": prospecto.nombre,
        "telefono": prospecto.telefono,
        "cedula": prospecto.cedula,
        "email": prospecto.email,
        "canal": data.get("canal") or prospecto.canal or "manual",
        "asesor_id": prospecto.asesor_id,
        "fecha_entrega": prospecto.fecha_entrega,
        "notas": prospecto.notas,
        "tipo": data.get("tipo") or ("Reserva" if prospecto.fecha_entrega else "Inmediato"),
        "products": products,
        **{
            field: getattr(prospecto, field)
            for field in sales_service.ADDRESS_FIELDS
            if field.startswith("direccion_facturacion_")
        },
    }
    sales = sales_service.create_manual_order(db, order_data, user=user)

    old = prospecto.estado_prospecto
    prospecto.estado_prospecto = EstadoProspecto.convertido.value
    prospecto.orden_convertida = sales[0].orden
    create_status_history(
        db, "prospecto", prospecto.id, old, prospecto.estado_prospecto, user=user,
        notes=f"Convertido en orden {sales[0].orden}",
    )
    logger.info("Prospecto %s convertido en orden %s", prospecto.prospecto, sales[0].orden)
    return sales
