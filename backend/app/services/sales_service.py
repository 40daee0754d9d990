"""
Servicio de negocio para líneas de venta.
Normaliza y valida registros de cualquier canal, inserta órdenes y
resuelve listados y ediciones.
"""
import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.clock import today as local_today
from app.core.enums import EstadoVerificacion, TipoVenta
from app.core.errors import DomainError, NotFoundError
from app.core.sequence_service import next_manual_order
from app.core.serialization_helpers import parse_date, to_decimal
from app.models.sale import Sale
from app.models.user import User
from app.routes.status_history import create_status_history
from app.services import delivery_status

logger = logging.getLogger(__name__)

ADDRESS_FIELDS = tuple(
    f"direccion_{bloque}_{campo}"
    for bloque in ("facturacion", "despacho")
    for campo in ("pais", "estado", "ciudad", "direccion", "urbanizacion", "referencia")
)

CUSTOMER_FIELDS = ("nombre", "cedula", "telefono", "email")
LOGISTICS_FIELDS = (
    "transportista", "nro_guia", "fecha_despacho", "fecha_cliente", "fecha_devolucion",
    "tipo_devolucion", "datos_devolucion",
)
# Campos editables por PATCH /sales/{id}
EDITABLE_FIELDS = (
    CUSTOMER_FIELDS
    + ("product", "sku", "cantidad", "total_usd", "tipo", "fecha", "fecha_entrega", "asesor_id", "notas",
       "direccion_despacho_igual_facturacion")
    + ADDRESS_FIELDS
    + LOGISTICS_FIELDS
)
# Campos aceptados al crear una línea desde un canal
RECORD_FIELDS = (
    ("orden", "canal", "estado_entrega")
    + EDITABLE_FIELDS
    + ("pago_inicial_usd", "fecha_pago_inicial", "banco_receptor_inicial", "referencia_inicial", "monto_inicial_bs",
       "flete_a_pagar", "pago_flete_usd", "fecha_flete", "banco_receptor_flete", "referencia_flete",
       "monto_flete_bs", "flete_gratis")
)

DATE_FIELDS = {
    "fecha", "fecha_entrega", "fecha_despacho", "fecha_cliente", "fecha_devolucion",
    "fecha_pago_inicial", "fecha_flete",
}
MONEY_FIELDS = {
    "total_usd", "pago_inicial_usd", "monto_inicial_bs", "flete_a_pagar", "pago_flete_usd", "monto_flete_bs",
}
BOOL_FIELDS = {"direccion_despacho_igual_facturacion", "flete_gratis"}
REQUIRED_FIELDS = ("orden", "nombre", "product", "total_usd")


def parse_bool(value) -> bool:
    """Acepta booleanos reales y las variantes de texto que llegan de hojas de cálculo."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    text = str(value).strip().lower()
    if text in {"true", "1", "si", "sí", "yes", "x"}:
        return True
    if text in {"false", "0", "no", ""}:
        return False
    raise ValueError(f"Valor booleano inválido: {value}")


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _text(value) -> str:
    """Las celdas numéricas de Excel llegan como float: 12345.0 -> "12345"."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def normalize_record(raw: Dict[str, Any], canal: Optional[str] = None) -> Dict[str, Any]:
    """
    Convierte un registro crudo (webhook, API, Excel) a valores tipados.
    Lanza DomainError con el primer problema encontrado.
    """
    record: Dict[str, Any] = {}
    for field in RECORD_FIELDS:
        if field not in raw or _blank(raw[field]):
            continue
        value = raw[field]
        try:
            if field in DATE_FIELDS:
                value = parse_date(value)
            elif field in MONEY_FIELDS:
                value = to_decimal(value)
            elif field in BOOL_FIELDS:
                value = parse_bool(value)
            elif field == "cantidad":
                value = int(float(value))
            elif field == "asesor_id":
                value = int(value)
            else:
                value = _text(value)
        except (TypeError, ValueError):
            raise DomainError(f"{field}: valor inválido '{raw[field]}'")
        record[field] = value

    if canal:
        record["canal"] = canal
    for field in REQUIRED_FIELDS:
        if field not in record:
            raise DomainError(f"{field} es obligatorio")
    if "canal" not in record:
        raise DomainError("canal es obligatorio")
    if record["total_usd"] < 0:
        raise DomainError("total_usd no puede ser negativo")
    if record.get("cantidad", 1) < 1:
        raise DomainError("cantidad debe ser al menos 1")

    tipo = record.get("tipo", TipoVenta.inmediato.value)
    if tipo not in {t.value for t in TipoVenta}:
        raise DomainError(f"tipo inválido: {tipo}")
    record["tipo"] = tipo

    if "estado_entrega" in record:
        record["estado_entrega"] = delivery_status.parse_estado(record["estado_entrega"]).value
    record.setdefault("fecha", local_today())
    return record


def validate_records(raw_records: Iterable[Dict[str, Any]], canal: Optional[str] = None,
                     max_errors: int = 10) -> Tuple[List[Dict[str, Any]], List[str]]:
    """Valida el lote completo antes de escribir. Retorna (normalizados, primeros errores)."""
    normalized, errors = [], []
    for index, raw in enumerate(raw_records, start=1):
        try:
            normalized.append(normalize_record(raw, canal))
        except DomainError as exc:
            if len(errors) < max_errors:
                errors.append(f"Registro {index}: {exc}")
            else:
                break
    return normalized, errors


def existing_orders(db: Session, ordenes: Iterable[str]) -> Set[str]:
    ordenes = {o for o in ordenes if o}
    if not ordenes:
        return set()
    rows = db.query(Sale.orden).filter(Sale.orden.in_(ordenes)).distinct().all()
    return {r[0] for r in rows}


def insert_records(db: Session, records: List[Dict[str, Any]], batch_id: Optional[str] = None,
                   user: Optional[User] = None) -> List[Sale]:
    """Inserta registros ya normalizados. Estado inicial según canal si no viene uno. No hace commit."""
    sales = []
    for record in records:
        estado = record.get("estado_entrega") or delivery_status.initial_status_for_channel(record["canal"]).value
        sale = Sale(
            **{k: v for k, v in record.items() if k != "estado_entrega"},
            estado_entrega=estado,
            estado_verificacion_inicial=EstadoVerificacion.por_verificar.value,
            estado_verificacion_flete=EstadoVerificacion.por_verificar.value,
            import_batch_id=batch_id,
        )
        db.add(sale)
        sales.append(sale)
    db.flush()
    for sale in sales:
        create_status_history(db, "sale", sale.id, None, sale.estado_entrega, user=user, notes=f"Creada ({sale.canal})")
    return sales


def create_manual_order(db: Session, data: Dict[str, Any], user: Optional[User] = None) -> List[Sale]:
    """
    Venta manual / tienda: una línea por producto, todas con la misma orden.
    La orden se asigna del correlativo si no se indica. Reserva exige fecha_entrega.
    """
    products = data.get("products") or []
    if not products:
        raise DomainError("La orden debe tener al menos un producto")

    tipo = data.get("tipo") or TipoVenta.inmediato.value
    if tipo == TipoVenta.reserva.value and not data.get("fecha_entrega"):
        raise DomainError("Una Reserva requiere fecha_entrega")

    orden = (data.get("orden") or "").strip()
    if orden:
        if existing_orders(db, [orden]):
            raise DomainError(f"La orden {orden} ya existe")
    else:
        orden = next_manual_order(db)
        while existing_orders(db, [orden]):
            orden = next_manual_order(db)

    base = {k: v for k, v in data.items() if k not in {"products", "orden"}}
    base["canal"] = data.get("canal") or "manual"
    base["tipo"] = tipo
    raw_records = [
        {**base, "orden": orden, "product": p.get("product"), "sku": p.get("sku"),
         "cantidad": p.get("cantidad", 1), "total_usd": p.get("total_usd")}
        for p in products
    ]
    records, errors = validate_records(raw_records)
    if errors:
        raise DomainError("; ".join(errors))
    sales = insert_records(db, records, user=user)
    logger.info("Orden manual %s creada con %s línea(s)", orden, len(sales))
    return sales


def get_sale(db: Session, sale_id: int) -> Sale:
    sale = db.query(Sale).filter(Sale.id == sale_id).first()
    if not sale:
        raise NotFoundError(f"Venta {sale_id} no encontrada")
    return sale


def update_sale(db: Session, sale_id: int, data: Dict[str, Any]) -> Sale:
    sale = get_sale(db, sale_id)
    for field in EDITABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field in DATE_FIELDS:
            value = parse_date(value)
        elif field in MONEY_FIELDS:
            value = to_decimal(value)
            if value < 0:
                raise DomainError(f"{field} no puede ser negativo")
        elif field in BOOL_FIELDS:
            value = parse_bool(value)
        if field in {"nombre", "product"} and _blank(value):
            raise DomainError(f"{field} es obligatorio")
        setattr(sale, field, value)
    if sale.tipo not in {t.value for t in TipoVenta}:
        raise DomainError(f"tipo inválido: {sale.tipo}")
    db.flush()
    return sale


def update_order_address(db: Session, orden: str, address: Dict[str, Any]) -> List[Sale]:
    """Corrección de dirección para todas las líneas de una orden."""
    lines = db.query(Sale).filter(Sale.orden == orden).all()
    if not lines:
        raise NotFoundError(f"Orden {orden} no encontrada")
    for line in lines:
        for field in ADDRESS_FIELDS:
            if field in address and not _blank(address[field]):
                setattr(line, field, str(address[field]).strip())
        if "direccion_despacho_igual_facturacion" in address:
            line.direccion_despacho_igual_facturacion = parse_bool(address["direccion_despacho_igual_facturacion"])
    db.flush()
    return lines


def list_sales(
    db: Session,
    canal: Optional[str] = None,
    estado_entrega: Optional[List[str]] = None,
    orden: Optional[str] = None,
    search: Optional[str] = None,
    asesor_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    include_hidden: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> Dict[str, Any]:
    """Perdida y Cancelada se ocultan salvo include_hidden o filtro explícito por estado."""
    query = db.query(Sale)
    if canal:
        query = query.filter(Sale.canal == canal)
    if estado_entrega:
        query = query.filter(Sale.estado_entrega.in_(estado_entrega))
    elif not include_hidden:
        query = query.filter(Sale.estado_entrega.notin_([e.value for e in delivery_status.HIDDEN]))
    if orden:
        query = query.filter(Sale.orden.ilike(f"%{orden}%"))
    if search:
        term = f"%{search}%"
        query = query.filter(or_(Sale.nombre.ilike(term), Sale.cedula.ilike(term), Sale.telefono.ilike(term)))
    if asesor_id is not None:
        query = query.filter(Sale.asesor_id == asesor_id)
    if start_date:
        query = query.filter(Sale.fecha >= start_date)
    if end_date:
        query = query.filter(Sale.fecha <= end_date)

    total = query.count()
    items = query.order_by(Sale.fecha.desc(), Sale.orden.desc(), Sale.id.asc()).offset(offset).limit(limit).all()
    return {"total": total, "limit": limit, "offset": offset, "items": items}


def delete_sale(db: Session, sale_id: int) -> None:
    """
    Elimina una línea. Las cuotas de la orden pasan a la siguiente línea (menor id);
    solo se borran en cascada al eliminar la última línea de la orden.
    """
    sale = get_sale(db, sale_id)
    heir = (
        db.query(Sale)
        .filter(Sale.orden == sale.orden, Sale.id != sale.id)
        .order_by(Sale.id.asc())
        .first()
    )
    if heir is not None:
        moved = list(sale.installments)
        for installment in moved:
            installment.sale = heir
        if moved:
            db.flush()
            logger.info("Orden %s: %s cuota(s) movidas a la línea %s", sale.orden, len(moved), heir.id)
    logger.warning("Eliminando venta %s (orden %s)", sale.id, sale.orden)
    db.delete(sale)
    db.flush()
