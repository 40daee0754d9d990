"""
Importación y exportación de hojas de cálculo (pandas + openpyxl).

Ventas:
- mode="add": omite filas cuya orden ya existe y reporta cuántas se ignoraron.
- mode="replace": guarda una copia de las filas con las órdenes del archivo,
  las borra y luego inserta. La copia permite deshacer la última importación.
El lote completo se valida antes de escribir.
"""
import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from io import BytesIO
from typing import Any, Dict, List, Optional

import pandas as pd
from sqlalchemy import Date, DateTime, Numeric
from sqlalchemy.orm import Session

from app.core.errors import DomainError, NotFoundError
from app.models.payment_installment import PaymentInstallment
from app.models.sale import Sale
from app.models.sale_snapshot import SaleSnapshot
from app.models.upload_history import UploadHistory
from app.models.user import User
from app.services import egresos_service, sales_service

logger = logging.getLogger(__name__)

IMPORT_CANALES = {"cashea", "shopify", "treble", "ShopMom"}
MODES = {"add", "replace"}

# Variantes de encabezado (en minúsculas) -> campo
SALES_COLUMN_MAPPING = {
    "orden": "orden",
    "# orden": "orden",
    "name": "orden",
    "nombre": "nombre",
    "billing name": "nombre",
    "cedula": "cedula",
    "cédula": "cedula",
    "telefono": "telefono",
    "teléfono": "telefono",
    "billing phone": "telefono",
    "email": "email",
    "total usd": "total_usd",
    "total (usd)": "total_usd",
    "total_usd": "total_usd",
    "lineitem price": "total_usd",
    "fecha": "fecha",
    "created at": "fecha",
    "product": "product",
    "producto": "product",
    "lineitem name": "product",
    "sku": "sku",
    "lineitem sku": "sku",
    "cantidad": "cantidad",
    "lineitem quantity": "cantidad",
    "tipo": "tipo",
    "fecha entrega": "fecha_entrega",
    "fecha_entrega": "fecha_entrega",
    "estado de entrega": "estado_entrega",
    "estado_entrega": "estado_entrega",
    "pago inicial usd": "pago_inicial_usd",
    "pago_inicial_usd": "pago_inicial_usd",
    "referencia": "referencia_inicial",
    "monto en bs": "monto_inicial_bs",
    "notas": "notas",
}

EGRESOS_COLUMN_MAPPING = {
    "fecha": "fecha",
    "descripcion": "descripcion",
    "descripción": "descripcion",
    "beneficiario": "beneficiario",
    "monto": "monto",
    "moneda": "moneda",
    "tipo": "tipo",
    "metodo de pago": "metodo_pago",
    "método de pago": "metodo_pago",
    "metodo_pago": "metodo_pago",
    "fecha compromiso": "fecha_compromiso",
    "fecha_compromiso": "fecha_compromiso",
    "notas": "notas",
}


def read_dataframe(contents: bytes, filename: str, column_mapping: Dict[str, str]) -> List[Dict[str, Any]]:
    """Lee .xlsx/.xls/.csv, normaliza encabezados y convierte NaN en None."""
    name = (filename or "").lower()
    if name.endswith((".xlsx", ".xls")):
        df = pd.read_excel(BytesIO(contents))
    elif name.endswith(".csv"):
        df = pd.read_csv(BytesIO(contents))
    else:
        raise DomainError("El archivo debe ser Excel (.xlsx o .xls) o CSV")

    df.columns = df.columns.astype(str).str.lower().str.strip()
    rename = {}
    for column in df.columns:
        target = column_mapping.get(column)
        if target and target not in rename.values() and target not in df.columns:
            rename[column] = target
    df = df.rename(columns=rename)
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")


def _history(db: Session, filename: str, canal: str, status: str, count: int = 0, error: Optional[str] = None,
             mode: Optional[str] = None, batch_id: Optional[str] = None) -> UploadHistory:
    entry = UploadHistory(
        filename=filename, canal=canal, records_count=count, status=status,
        error_message=error, mode=mode, batch_id=batch_id,
    )
    db.add(entry)
    return entry


def _json_value(value):
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def _to_dict(obj) -> Dict[str, Any]:
    return {c.key: _json_value(getattr(obj, c.key)) for c in obj.__table__.columns}


def _from_dict(model, data: Dict[str, Any]):
    values = {}
    for column in model.__table__.columns:
        value = data.get(column.key)
        if value is not None:
            if isinstance(column.type, DateTime):
                value = datetime.fromisoformat(value)
            elif isinstance(column.type, Date):
                value = date.fromisoformat(value)
            elif isinstance(column.type, Numeric):
                value = Decimal(value)
        values[column.key] = value
    return model(**values)


def _snapshot(db: Session, sales: List[Sale], batch_id: str) -> None:
    """Reemplaza la copia anterior: solo se puede deshacer la última importación."""
    db.query(SaleSnapshot).delete(synchronize_session=False)
    for sale in sales:
        data = _to_dict(sale)
        data["installments"] = [_to_dict(i) for i in sale.installments]
        db.add(SaleSnapshot(batch_id=batch_id, data=data))


def import_sales(db: Session, contents: bytes, filename: str, canal: str, mode: str = "add",
                 user: Optional[User] = None) -> Dict[str, Any]:
    if mode not in MODES:
        raise DomainError("mode debe ser 'add' o 'replace'")
    if canal not in IMPORT_CANALES:
        raise DomainError(f"Canal inválido: {canal}. Opciones: {', '.join(sorted(IMPORT_CANALES))}")

    raw = read_dataframe(contents, filename, SALES_COLUMN_MAPPING)
    if not raw:
        raise DomainError("El archivo no tiene filas")
    records, errors = sales_service.validate_records(raw, canal=canal)
    if errors:
        message = "; ".join(errors)
        _history(db, filename, canal, "error", count=len(raw), error=message, mode=mode)
        db.commit()
        logger.warning("Importación %s rechazada: %s", filename, message)
        raise DomainError(f"Archivo rechazado, no se importó ninguna fila: {message}")

    batch_id = str(uuid.uuid4())
    ordenes = {r["orden"] for r in records}
    replaced = 0
    duplicates = 0

    if mode == "add":
        existing = sales_service.existing_orders(db, ordenes)
        to_insert = [r for r in records if r["orden"] not in existing]
        duplicates = len(records) - len(to_insert)
    else:
        victims = db.query(Sale).filter(Sale.orden.in_(ordenes)).all()
        _snapshot(db, victims, batch_id)
        for sale in victims:
            db.delete(sale)
        db.flush()
        replaced = len(victims)
        to_insert = records

    sales = sales_service.insert_records(db, to_insert, batch_id=batch_id, user=user)
    message = f"{duplicates} duplicate order(s) ignored" if duplicates else None
    _history(db, filename, canal, "success", count=len(sales), error=message, mode=mode, batch_id=batch_id)
    db.commit()
    logger.info("Importación %s (%s, %s): %s insertadas, %s reemplazadas, %s duplicadas",
                filename, canal, mode, len(sales), replaced, duplicates)
    return {
        "mode": mode,
        "batch_id": batch_id,
        "inserted": len(sales),
        "replaced": replaced,
        "duplicates_ignored": duplicates,
    }


def undo_last_import(db: Session) -> Dict[str, Any]:
    """Deshace la última importación en modo replace: borra lo insertado y restaura la copia."""
    last = (
        db.query(UploadHistory)
        .filter(UploadHistory.mode == "replace", UploadHistory.batch_id.isnot(None))
        .order_by(UploadHistory.id.desc())
        .first()
    )
    if not last or last.status != "success":
        raise NotFoundError("No hay importación para deshacer")

    inserted = db.query(Sale).filter(Sale.import_batch_id == last.batch_id).all()
    for sale in inserted:
        db.delete(sale)
    db.flush()

    snapshots = db.query(SaleSnapshot).filter(SaleSnapshot.batch_id == last.batch_id).all()
    restored = 0
    for snap in snapshots:
        data = dict(snap.data)
        installments = data.pop("installments", [])
        db.add(_from_dict(Sale, data))
        db.flush()
        for inst in installments:
            db.add(_from_dict(PaymentInstallment, inst))
        restored += 1
    db.query(SaleSnapshot).filter(SaleSnapshot.batch_id == last.batch_id).delete(synchronize_session=False)
    last.status = "undone"
    db.commit()
    logger.info("Importación %s deshecha: %s borradas, %s restauradas", last.filename, len(inserted), restored)
    return {"batch_id": last.batch_id, "removed": len(inserted), "restored": restored}


def import_egresos(db: Session, contents: bytes, filename: str, user: Optional[User] = None) -> Dict[str, Any]:
    """Alta masiva de egresos. Si una fila es inválida no se crea ninguno."""
    raw = read_dataframe(contents, filename, EGRESOS_COLUMN_MAPPING)
    if not raw:
        raise DomainError("El archivo no tiene filas")
    errors = []
    for index, row in enumerate(raw, start=1):
        if not row.get("descripcion"):
            errors.append(f"Fila {index}: descripcion es obligatoria")
        try:
            if row.get("monto") is None or Decimal(str(row["monto"])) <= 0:
                errors.append(f"Fila {index}: monto debe ser mayor a 0")
        except ArithmeticError:
            errors.append(f"Fila {index}: monto inválido")
        if len(errors) >= 10:
            break
    if errors:
        _history(db, filename, "egresos", "error", count=len(raw), error="; ".join(errors), mode="add")
        db.commit()
        raise DomainError(f"Archivo rechazado, no se importó ninguna fila: {'; '.join(errors)}")

    created = [egresos_service.create_egreso(db, row, user=user) for row in raw]
    _history(db, filename, "egresos", "success", count=len(created), mode="add")
    db.commit()
    return {"inserted": len(created)}


SALES_EXPORT_COLUMNS = [
    ("orden", "Orden"), ("canal", "Canal"), ("tipo", "Tipo"), ("fecha", "Fecha"), ("nombre", "Nombre"),
    ("cedula", "Cédula"), ("telefono", "Teléfono"), ("email", "Email"), ("product", "Producto"),
    ("sku", "SKU"), ("cantidad", "Cantidad"), ("total_usd", "Total USD"), ("estado_entrega", "Estado de entrega"),
    ("pago_inicial_usd", "Pago inicial USD"), ("estado_verificacion_inicial", "Verificación inicial"),
    ("pago_flete_usd", "Flete USD"), ("transportista", "Transportista"), ("nro_guia", "Guía"),
    ("fecha_entrega", "Fecha entrega"), ("notas", "Notas"),
]

EGRESOS_EXPORT_COLUMNS = [
    ("numero_egreso", "Número"), ("fecha", "Fecha"), ("descripcion", "Descripción"),
    ("beneficiario", "Beneficiario"), ("monto", "Monto"), ("moneda", "Moneda"), ("tipo", "Tipo"),
    ("metodo_pago", "Método de pago"), ("estado", "Estado"), ("fecha_compromiso", "Fecha compromiso"),
    ("fecha_pago", "Fecha pago"), ("estado_verificacion", "Verificación"),
    ("frecuencia_recurrencia", "Frecuencia"), ("numero_en_serie", "N° en serie"),
    ("numero_repeticiones", "Repeticiones"),
]


def _to_excel(rows: List[Any], columns, sheet_name: str) -> bytes:
    data = [
        {label: (float(v) if isinstance(v, Decimal) else v)
         for field, label in columns
         for v in [getattr(row, field)]}
        for row in rows
    ]
    df = pd.DataFrame(data, columns=[label for _, label in columns])
    output = BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name=sheet_name)
    return output.getvalue()


def export_sales(db: Session, **filters) -> bytes:
    result = sales_service.list_sales(db, limit=1_000_000, offset=0, **filters)
    return _to_excel(result["items"], SALES_EXPORT_COLUMNS, "Ventas")


def export_egresos(db: Session, **filters) -> bytes:
    result = egresos_service.list_egresos(db, limit=1_000_000, offset=0, **filters)
    return _to_excel(result["items"], EGRESOS_EXPORT_COLUMNS, "Egresos")
