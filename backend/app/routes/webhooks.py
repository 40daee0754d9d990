from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.deps import verify_webhook_token
from app.core.errors import DomainError, http_error
from app.services import webhooks_service

router = APIRouter(dependencies=[Depends(verify_webhook_token)])


@router.post("/shopify")
def shopify_order(
    payload: Dict[str, Any] = Body(...),
    brand: str = Query("boxisleep", description="boxisleep | mompox"),
    db: Session = Depends(get_db),
):
    """Orden creada en la tienda. Reenvíos de la misma orden no duplican líneas."""
    try:
        return webhooks_service.process_shopify_order(db, payload, brand)
    except DomainError as e:
        db.rollback()
        raise http_error(e)


@router.post("/treble")
def treble_address(
    payload: Dict[str, Any] = Body(...),
    orden: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """Corrección de dirección de despacho enviada por el cliente."""
    try:
        return webhooks_service.process_treble_address(db, orden or payload.get("orden"), payload)
    except DomainError as e:
        db.rollback()
        raise http_error(e)
