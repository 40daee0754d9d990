from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.deps import get_current_user
from app.core.enums import EstadoProspecto, TipoVenta
from app.core.errors import DomainError, http_error
from app.core.serialization_helpers import row_to_dict
from app.models.user import User
from app.routes.sales import ProductLine, sale_to_dict
from app.services import prospectos_service, seguimiento_service


router = APIRouter()


class ProspectoProduct(BaseModel):
    producto: str
    sku: Optional[str] = None
    cantidad: int = 1
    total_usd: Optional[Decimal] = None


class ProspectoBase(BaseModel):
    cedula: Optional[str] = None
    email: Optional[str] = None
    canal: Optional[str] = None
    asesor_id: Optional[int] = None
    fecha_entrega: Optional[date] = None
    total_usd: Optional[Decimal] = None
    products: Optional[List[ProspectoProduct]] = None
    notas: Optional[str] = None
    direccion_facturacion_pais: Optional[str] = None
    direccion_facturacion_estado: Optional[str] = None
    direccion_facturacion_ciudad: Optional[str] = None
    direccion_facturacion_direccion: Optional[str] = None
    direccion_facturacion_urbanizacion: Optional[str] = None
    direccion_facturacion_referencia: Optional[str] = None


class ProspectoCreate(ProspectoBase):
    nombre: str
    telefono: str
    fecha_creacion: Optional[date] = None


class ProspectoUpdate(ProspectoBase):
    nombre: Optional[str] = None
    telefono: Optional[str] = None


class EstadoUpdate(BaseModel):
    estado_prospecto: EstadoProspecto
    notas: Optional[str] = None


class ConvertRequest(BaseModel):
    canal: Optional[str] = None
    tipo: Optional[TipoVenta] = None
    products: Optional[List[ProductLine]] = None


class FollowUpUpdate(BaseModel):
    fecha_seguimiento1: Optional[date] = None
    respuesta_seguimiento1: Optional[str] = None
    fecha_seguimiento2: Optional[date] = None
    respuesta_seguimiento2: Optional[str] = None
    fecha_seguimiento3: Optional[date] = None
    respuesta_seguimiento3: Optional[str] = None


def _payload(model: BaseModel) -> dict:
    return model.model_dump(exclude_unset=True, mode="json")


@router.get("/")
def list_prospectos(
    estado: Optional[EstadoProspecto] = Query(None),
    asesor_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = prospectos_service.list_prospectos(
        db, estado=estado.value if estado else None, asesor_id=asesor_id, search=search, limit=limit, offset=offset,
    )
    result["items"] = [row_to_dict(p) for p in result["items"]]
    return result


@router.post("/", status_code=201)
def create_prospecto(data: ProspectoCreate, db: Session = Depends(get_db),
                     current_user: User = Depends(get_current_user)):
    try:
        prospecto = prospectos_service.create_prospecto(db, _payload(data), user=current_user)
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    db.refresh(prospecto)
    return row_to_dict(prospecto)


@router.get("/{prospecto_id}")
def get_prospecto(prospecto_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        return row_to_dict(prospectos_service.get_prospecto(db, prospecto_id))
    except DomainError as e:
        raise http_error(e)


@router.patch("/{prospecto_id}")
def update_prospecto(prospecto_id: int, data: ProspectoUpdate, db: Session = Depends(get_db),
                     current_user: User = Depends(get_current_user)):
    try:
        prospecto = prospectos_service.update_prospecto(db, prospecto_id, _payload(data))
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    db.refresh(prospecto)
    return row_to_dict(prospecto)


@router.put("/{prospecto_id}/estado")
def update_estado(prospecto_id: int, data: EstadoUpdate, db: Session = Depends(get_db),
                  current_user: User = Depends(get_current_user)):
    try:
        prospecto = prospectos_service.set_estado(
            db, prospecto_id, data.estado_prospecto.value, data.notas, user=current_user
        )
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    db.refresh(prospecto)
    return row_to_dict(prospecto)


@router.post("/{prospecto_id}/convertir", status_code=201)
def convert_prospecto(prospecto_id: int, data: ConvertRequest, db: Session = Depends(get_db),
                      current_user: User = Depends(get_current_user)):
    """Convierte el prospecto en una orden manual con sus productos."""
    try:
        sales = prospectos_service.convert_to_order(db, prospecto_id, _payload(data), user=current_user)
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    return {"orden": sales[0].orden, "sales": [sale_to_dict(s) for s in sales]}


@router.get("/{prospecto_id}/seguimiento")
def get_follow_up(prospecto_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        prospecto = prospectos_service.get_prospecto(db, prospecto_id)
        config = seguimiento_service.get_config(db, "prospectos")
        db.commit()
    except DomainError as e:
        raise http_error(e)
    return seguimiento_service.follow_up_view(prospecto, prospecto.fecha_creacion, config)


@router.put("/{prospecto_id}/seguimiento")
def update_follow_up(prospecto_id: int, data: FollowUpUpdate, db: Session = Depends(get_db),
                     current_user: User = Depends(get_current_user)):
    """Editar la fecha de una fase recalcula en cascada las fases siguientes no fijadas."""
    try:
        prospecto = prospectos_service.get_prospecto(db, prospecto_id)
        config = seguimiento_service.get_config(db, "prospectos")
        seguimiento_service.apply_follow_up_update(
            [prospecto], prospecto.fecha_creacion, config, data.model_dump(exclude_unset=True)
        )
        db.commit()
    except DomainError as e:
        db.rollback()
        raise http_error(e)
    db.refresh(prospecto)
    return seguimiento_service.follow_up_view(prospecto, prospecto.fecha_creacion, config)
