"""
Descarga de órdenes desde Cashea (BNPL).

La API responde en formato columnar (un arreglo por campo dentro de
`queryData`) que se transpone a una lista de líneas. La idempotencia entre
ventanas solapadas se logra omitiendo números de orden ya registrados.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import DomainError, ExternalServiceError
from app.core.serialization_helpers import parse_date
from app.models.cashea import CasheaAutomaticDownload, CasheaAutomationConfig
from app.models.upload_history import UploadHistory
from app.services import sales_service

logger = logging.getLogger(__name__)

CANAL = "cashea"

FREQUENCY_MINUTES = {
    "30 minutes": 30,
    "1 hour": 60,
    "2 hours": 120,
    "4 hours": 240,
    "8 hours": 480,
    "16 hours": 960,
    "24 hours": 1440,
}
DEFAULT_FREQUENCY = "2 hours"

# Campo destino -> nombres posibles de la columna en queryData
COLUMN_ALIASES = {
    "orden": ("# Orden",),
    "nombre": ("Nombre",),
    "cedula": ("Cédula",),
    "telefono": ("Teléfono",),
    "email": ("Email",),
    "total_usd": ("Total (USD)",),
    "fecha": ("Fecha",),
    "pago_inicial_usd": ("Pago inicial usd", "Pago Inicial (USD)"),
    "referencia_inicial": ("Referencia", "# Referencia"),
    "monto_inicial_bs": ("Monto en bs", "Monto en Bs"),
    "product": ("Product",),
    "cantidad": ("Cantidad",),
}


class CasheaClient:
    def __init__(
        self,
        url: Optional[str] = None,
        email: Optional[str] = None,
        password: Optional[str] = None,
        store_name: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.url = url or settings.cashea_api_url
        self.email = email if email is not None else settings.cashea_email
        self.password = password if password is not None else settings.cashea_password
        self.store_name = store_name or settings.cashea_store_name
        self.timeout = timeout or settings.cashea_timeout_seconds
        self.transport = transport

    def _body(self, start: datetime, end: datetime) -> Dict[str, Any]:
        return {
            "userParams": {
                "queryParams": {
                    "0": self.store_name,
                    "1": self.store_name,
                    "2": start.isoformat(),
                    "3": end.isoformat(),
                    "length": 4,
                },
                "databaseNameOverrideParams": {"length": 0},
                "databaseHostOverrideParams": {"length": 0},
                "databasePasswordOverrideParams": {"length": 0},
                "databaseUsernameOverrideParams": {"length": 0},
            },
            "environment": "production",
            "frontendVersion": "1",
            "includeQueryExecutionMetadata": True,
            "isInGlobalWidget": True,
            "password": "",
            "queryType": "SqlQueryUnified",
            "releaseVersion": None,
            "streamResponse": False,
        }

    def fetch(self, start: datetime, end: datetime) -> Dict[str, Any]:
        if not self.email or not self.password:
            raise ExternalServiceError("Credenciales de Cashea no configuradas")
        logger.info("Consultando Cashea %s -> %s", start.isoformat(), end.isoformat())
        try:
            with httpx.Client(transport=self.transport, timeout=self.timeout) as client:
                response = client.post(self.url, json=self._body(start, end), auth=(self.email, self.password))
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as exc:
            raise ExternalServiceError(f"Cashea respondió {exc.response.status_code}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ExternalServiceError(f"Error consultando Cashea: {exc}") from exc


def transpose_query_data(payload: Any) -> List[Dict[str, Any]]:
    """Convierte {"queryData": {"# Orden": [...], "Nombre": [...]}} en una lista de registros."""
    if isinstance(payload, list):
        payload = payload[0] if payload else {}
    query_data = payload.get("queryData") if isinstance(payload, dict) else None
    if not isinstance(query_data, dict):
        return []

    columns: Dict[str, List[Any]] = {}
    for field, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if query_data.get(alias):
                columns[field] = list(query_data[alias])
                break
        else:
            columns[field] = []

    size = max((len(values) for values in columns.values()), default=0)
    records = []
    for i in range(size):
        row = {field: (values[i] if i < len(values) else None) for field, values in columns.items()}
        fecha = parse_date(row["fecha"]) if row["fecha"] else None
        records.append({
            "orden": row["orden"],
            "nombre": row["nombre"] or "Cliente Cashea",
            "cedula": row["cedula"],
            "telefono": row["telefono"],
            "email": row["email"],
            "total_usd": row["total_usd"] or 0,
            "fecha": fecha,
            "product": row["product"] or "CASHEA Product",
            "cantidad": row["cantidad"] or 1,
            "pago_inicial_usd": row["pago_inicial_usd"],
            "fecha_pago_inicial": fecha if row["pago_inicial_usd"] else None,
            "referencia_inicial": row["referencia_inicial"],
            "monto_inicial_bs": row["monto_inicial_bs"],
            "direccion_despacho_igual_facturacion": True,
        })
    return records


def _history(db: Session, filename: str, status: str, count: int = 0, error: Optional[str] = None) -> UploadHistory:
    entry = UploadHistory(filename=filename, canal=CANAL, records_count=count, status=status, error_message=error)
    db.add(entry)
    return entry


def _notify_new_orders(ordenes: List[str], transport: Optional[httpx.BaseTransport] = None) -> None:
    """Aviso opcional a un webhook externo. Best-effort."""
    if not settings.cashea_webhook_url or not ordenes:
        return
    try:
        with httpx.Client(transport=transport, timeout=15.0) as client:
            response = client.post(settings.cashea_webhook_url, json={"canal": CANAL, "ordenes": ordenes})
            response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("No se pudo notificar nuevas órdenes Cashea: %s", exc)


def download_orders(db: Session, start: datetime, end: datetime, client: CasheaClient,
                    filename: Optional[str] = None) -> Dict[str, Any]:
    """
    Descarga, valida el lote completo y registra solo órdenes nuevas.
    Siempre deja una fila en upload_history. Hace commit.
    """
    filename = filename or f"cashea_{start:%Y%m%d%H%M}_{end:%Y%m%d%H%M}"
    try:
        payload = client.fetch(start, end)
    except ExternalServiceError as exc:
        logger.error("Descarga Cashea fallida: %s", exc)
        _history(db, filename, "error", error=str(exc))
        db.commit()
        return {"success": False, "message": str(exc), "records_count": 0, "duplicates_ignored": 0}

    raw = transpose_query_data(payload)
    records, errors = sales_service.validate_records(raw, canal=CANAL)
    if errors:
        message = "; ".join(errors)
        logger.error("Descarga Cashea con registros inválidos: %s", message)
        _history(db, filename, "error", count=len(raw), error=message)
        db.commit()
        return {"success": False, "message": message, "records_count": 0, "duplicates_ignored": 0}

    existing = sales_service.existing_orders(db, (r["orden"] for r in records))
    new_records = [r for r in records if r["orden"] not in existing]
    sales = sales_service.insert_records(db, new_records)
    new_orders = sorted({s.orden for s in sales})
    message = f"{len(existing)} duplicate order(s) ignored"
    _history(db, filename, "success", count=len(sales), error=message if existing else None)
    db.commit()
    logger.info("Cashea: %s línea(s) nuevas en %s orden(es); %s", len(sales), len(new_orders), message)

    _notify_new_orders(new_orders, transport=client.transport)
    return {
        "success": True,
        "message": message,
        "records_count": len(sales),
        "duplicates_ignored": len(existing),
        "ordenes": new_orders,
    }


def get_automation_config(db: Session) -> CasheaAutomationConfig:
    config = db.query(CasheaAutomationConfig).order_by(CasheaAutomationConfig.id.asc()).first()
    if not config:
        config = CasheaAutomationConfig(enabled=False, frequency=DEFAULT_FREQUENCY)
        db.add(config)
        db.flush()
    return config


def update_automation_config(db: Session, enabled: Optional[bool] = None, frequency: Optional[str] = None) -> CasheaAutomationConfig:
    config = get_automation_config(db)
    if frequency is not None:
        if frequency not in FREQUENCY_MINUTES:
            raise DomainError(f"Frecuencia inválida: {frequency}. Opciones: {', '.join(FREQUENCY_MINUTES)}")
        config.frequency = frequency
    if enabled is not None:
        config.enabled = enabled
    db.flush()
    return config


def run_automatic_download(db: Session, client: CasheaClient, now: Optional[datetime] = None) -> CasheaAutomaticDownload:
    """Descarga la ventana (ahora - frecuencia, ahora) y deja una fila de estado."""
    config = get_automation_config(db)
    now = now or datetime.utcnow()
    start = now - timedelta(minutes=FREQUENCY_MINUTES.get(config.frequency, FREQUENCY_MINUTES[DEFAULT_FREQUENCY]))
    result = download_orders(db, start, now, client, filename=f"cashea_auto_{now:%Y%m%d%H%M}")
    run = CasheaAutomaticDownload(
        start_date=start,
        end_date=now,
        records_count=result["records_count"],
        duplicates_ignored=result["duplicates_ignored"],
        status="success" if result["success"] else "error",
        error_message=None if result["success"] else result["message"],
    )
    db.add(run)
    db.commit()
    return run
