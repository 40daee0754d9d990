from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.deps import get_current_user, require_admin
from app.core.enums import EstadoEntrega, TipoVenta
from app.core.errors import DomainError, http_error
from app.core.serialization_helpers import row_to_dict, serialize_money
from app.models.sale import Sale
from app.models.user import User
from app.services import delivery_status, payments_service, sales_service
from app.services.email_service import EmailService, get_email_service


router = APIRouter()


def sale_to_dict(sale: Sale) -> dict:
    return row_to_dict(sale)


class ProductLine(BaseModel):
    product: str
    sku: Optional[str] = None
    cantidad: int = 1
    total_usd: Decimal


class AddressFields(BaseModel):
    direccion_facturacion_pais: Optional[str] = None
    direccion_facturacion_estado: Optional[str] = None
    direccion_facturacion_ciudad: Optional[str] = None
    direccion_facturacion_direccion: Optional[str] = None
    direccion_facturacion_urbanizacion: Optional[str] = None
    direccion_facturacion_referencia: Optional[str] = None
    direccion_despacho_igual_facturacion: Optional[bool] = None
    direccion_despacho_pais: Optional[str] = None
    direccion_despacho_estado: Optional[str] = None
    direccion_despacho_ciudad: Optional[str] = None
    direccion_despacho_direccion: Optional[str] = None
    direccion_despacho_urbanizacion: Optional[str] = None
    direccion_despacho_referencia: Optional[str] = None


class ManualOrderCreate(AddressFields):
    orden: Optional[str] = None
    canal: str = "manual"
    tipo: TipoVenta = TipoVenta.inmediato
    nombre: str
    cedula: Optional[str] = None
    telefono: Optional[str] = None
    email: Optional[str] = None
    fecha: Optional[date] = None
    fecha_entrega: Optional[date] = None
    asesor_id: Optional[int] = None
    notas: Optional[str] = None
    products: List[ProductLine]


class SaleUpdate(AddressFields):
    nombre: Optional[str] = None
    cedula: Optional[str] = None
    telefono: Optional[str] = None
    email: Optional[str] = None
    product: Optional[str] = None
    sku: Optional[str] = None
    cantidad: Optional[int] = None
    total_usd: Optional[Decimal] = None
    tipo: Optional[TipoVenta] = None
    fecha: Optional[date] = None
    fecha_entrega: Optional[date] = None
    asesor_id: Optional[int] = None
    notas: Optional[str] = None
    transportista: Optional[str] = None
    nro_guia: Optional[str] = None
    fecha_despacho: Optional[date] = None
    fecha_cliente: Optional[date] = None
    fecha_devolucion: Optional[date] = None
    tipo_devolucion: Optional[str] = None
    datos_devolucion: Optional[str] = None


class DeliveryStatusUpdate(BaseModel):
    estado_entrega: EstadoEntrega
    confirm: bool = False
    fecha_devolucion: Optional[date] = None
    notes: Optional[str] = None


def _dump(model: BaseModel) -> dict:
    data = model.model_dump(exclude_unset=True)
    return {k: (v.value if hasattr(v, "value") else v) for k, v in data.items()}


@router.get("/")
def list_sales(
    canal: Optional[str] = Query(None),
    estado_entrega: Optional[List[str]] = Query(None),
    orden: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Nombre, cédula o teléfono"),
    asesor_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    include_hidden: bool = Query(False, description="Incluir Perdida y Cancelada"),
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = sales_service.list_sales(
        db, canal=canal, estado_entrega=estado_entrega, orden=orden, search=search, asesor_id=asesor_id,
        start_date=start_date, end_date=end_date, include_hidden=include_hidden, limit=limit, offset=offset,
    )
    result["items"] = [sale_to_dict(s) for s in result["items"]]
    return result


@router.post("/manual", status_code=201)
def create_manual_order(
    data: ManualOrderCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    email_service: EmailService = Depends(get_email_service),
):
    """Venta manual o de tienda. Envía la confirmación al cliente en segundo plano."""
    payload = _dump(data)
    payload["products"] = [p.model_dump() for p in data.products]
    try:
        sales = sales_service.create_manual_order(db, payload, user=current_user)
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)

    first = sales[0]
    if first.email:
        background_tasks.add_task(
            email_service.send_order_confirmation,
            first.orden, first.nombre, first.email, first.canal,
            [{"product": s.product, "cantidad": s.cantidad, "total_usd": float(s.total_usd)} for s in sales],
        )
    return {"orden": first.orden, "sales": [sale_to_dict(s) for s in sales]}


@router.get("/orders/{orden}")
def get_order(orden: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Líneas de la orden con su resumen de pagos"""
    try:
        lines = payments_service.order_lines(db, orden)
        summary = payments_service.order_payment_summary(db, orden)
    except DomainError as e:
        raise http_error(e)
    return {
        "orden": orden,
        "lines": [sale_to_dict(s) for s in lines],
        "payments": serialize_money(summary),
    }


@router.get("/{sale_id}")
def get_sale(sale_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        sale = sales_service.get_sale(db, sale_id)
    except DomainError as e:
        raise http_error(e)
    data = sale_to_dict(sale)
    data["allowed_transitions"] = sorted(
        t.value for t in delivery_status.allowed_targets(delivery_status.parse_estado(sale.estado_entrega))
    )
    return data


@router.patch("/{sale_id}")
def update_sale(
    sale_id: int,
    data: SaleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        sale = sales_service.update_sale(db, sale_id, _dump(data))
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    db.refresh(sale)
    return sale_to_dict(sale)


@router.put("/{sale_id}/estado-entrega")
def update_delivery_status(
    sale_id: int,
    data: DeliveryStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Cambia el estado de entrega. Cancelada y Devuelto requieren confirm=true."""
    try:
        sale = sales_service.get_sale(db, sale_id)
        warnings = delivery_status.change_status(
            db, sale, data.estado_entrega,
            confirm=data.confirm, fecha_devolucion=data.fecha_devolucion,
            user=current_user, notes=data.notes,
        )
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    db.refresh(sale)
    return {"sale": sale_to_dict(sale), "warnings": warnings}


@router.delete("/{sale_id}", dependencies=[Depends(require_admin)])
def delete_sale(sale_id: int, db: Session = Depends(get_db)):
    try:
        sales_service.delete_sale(db, sale_id)
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    return {"deleted": sale_id}
