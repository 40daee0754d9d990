"""
Webhooks entrantes: órdenes de tienda (Shopify) y correcciones de
dirección de logística (Treble).
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.errors import DomainError
from app.core.serialization_helpers import to_decimal
from app.models.sale import Sale
from app.models.upload_history import UploadHistory
from app.services import sales_service

logger = logging.getLogger(__name__)

BRAND_CANALES = {
    "boxisleep": "shopify",
    "mompox": "ShopMom",
}


def _full_name(address: Dict[str, Any]) -> str:
    if address.get("name"):
        return address["name"]
    return f"{address.get('first_name') or ''} {address.get('last_name') or ''}".strip()


def shopify_to_records(payload: Dict[str, Any], canal: str) -> List[Dict[str, Any]]:
    """Una línea por line_item; los datos de cliente y dirección se repiten en cada línea."""
    billing = payload.get("billing_address") or {}
    shipping = payload.get("shipping_address") or {}
    customer = payload.get("customer") or {}
    orden = payload.get("name") or payload.get("order_number") or payload.get("id")

    records = []
    for item in payload.get("line_items") or []:
        product = item.get("name") or item.get("title") or ""
        cantidad = int(item.get("quantity") or 1)
        price = to_decimal(item.get("price"))
        records.append({
            "orden": orden,
            "canal": canal,
            "nombre": _full_name(billing) or _full_name(shipping) or _full_name(customer) or "Cliente Shopify",
            "telefono": billing.get("phone") or shipping.get("phone") or payload.get("phone"),
            "email": payload.get("email") or customer.get("email"),
            "product": product,
            "sku": item.get("sku"),
            "cantidad": cantidad,
            "total_usd": price * cantidad,
            "fecha": payload.get("created_at"),
            "tipo": "Reserva" if "RESERVA" in product.upper() else "Inmediato",
            "direccion_facturacion_pais": billing.get("country"),
            "direccion_facturacion_estado": billing.get("province"),
            "direccion_facturacion_ciudad": billing.get("city"),
            "direccion_facturacion_direccion": billing.get("address1"),
            "direccion_facturacion_urbanizacion": billing.get("address2"),
            "direccion_despacho_igual_facturacion": not shipping,
            "direccion_despacho_pais": shipping.get("country"),
            "direccion_despacho_estado": shipping.get("province"),
            "direccion_despacho_ciudad": shipping.get("city"),
            "direccion_despacho_direccion": shipping.get("address1"),
            "direccion_despacho_urbanizacion": shipping.get("address2"),
        })
    return records


def process_shopify_order(db: Session, payload: Dict[str, Any], brand: str = "boxisleep") -> Dict[str, Any]:
    """
    Registra las líneas nuevas de una orden de tienda. Una orden con varias
    líneas puede llegar en varias llamadas: se deduplica por (orden, producto)
    sin distinguir mayúsculas. Hace commit.
    """
    canal = BRAND_CANALES.get((brand or "").lower())
    if not canal:
        raise DomainError(f"Marca inválida: {brand}")

    raw = shopify_to_records(payload, canal)
    if not raw:
        raise DomainError("La orden no tiene line_items")
    records, errors = sales_service.validate_records(raw)
    if errors:
        raise DomainError("; ".join(errors))

    orden = records[0]["orden"]
    existing = {
        (s.product or "").strip().lower()
        for s in db.query(Sale).filter(Sale.orden == orden).all()
    }
    new_records = []
    for record in records:
        key = record["product"].strip().lower()
        if key in existing:
            continue
        existing.add(key)
        new_records.append(record)

    sales = sales_service.insert_records(db, new_records)
    skipped = len(records) - len(new_records)
    db.add(UploadHistory(
        filename=f"webhook_{canal}_{orden}",
        canal=canal,
        records_count=len(sales),
        status="success",
        error_message=f"{skipped} duplicate line(s) ignored" if skipped else None,
    ))
    db.commit()
    logger.info("Webhook %s orden %s: %s línea(s) nuevas, %s duplicadas", canal, orden, len(sales), skipped)
    return {
        "orden": orden,
        "canal": canal,
        "created": len(sales),
        "duplicates_ignored": skipped,
        "sale_ids": [s.id for s in sales],
        "total_usd": float(sum((to_decimal(s.total_usd) for s in sales), Decimal("0"))),
    }


TREBLE_ADDRESS_KEYS = {
    "pais": "pais",
    "estado": "estado",
    "ciudad": "ciudad",
    "direccion": "direccion",
    "urbanizacion": "urbanizacion",
    "referencia": "referencia",
}


def process_treble_address(db: Session, orden: Optional[str], payload: Dict[str, Any]) -> Dict[str, Any]:
    """Corrección de dirección de despacho para una orden existente."""
    if not orden:
        raise DomainError("orden es obligatoria")
    address: Dict[str, Any] = {}
    for key, suffix in TREBLE_ADDRESS_KEYS.items():
        if payload.get(key):
            address[f"direccion_despacho_{suffix}"] = payload[key]
    if not address:
        raise DomainError("La corrección no trae datos de dirección")
    address["direccion_despacho_igual_facturacion"] = False

    lines = sales_service.update_order_address(db, str(orden).strip(), address)
    db.commit()
    logger.info("Treble: dirección de despacho actualizada para orden %s (%s líneas)", orden, len(lines))
    return {"orden": orden, "updated": len(lines)}
