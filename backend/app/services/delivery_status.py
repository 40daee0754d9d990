"""
Máquina de estados de entrega por línea de venta.

Camino normal: Pendiente -> En proceso -> A despachar -> En tránsito -> Entregado,
con rama de devolución Entregado -> A devolver -> Devuelto. Perdida y Cancelada
son alcanzables desde cualquier estado no terminal. Devuelto, Cancelada y
Perdida son terminales.
"""
import logging
from datetime import date
from typing import Dict, List, Optional, Set

from sqlalchemy.orm import Session

from app.core.enums import EstadoEntrega, StatusFlete
from app.core.errors import InvalidTransition, DomainError
from app.models.sale import Sale
from app.models.user import User
from app.routes.status_history import create_status_history

logger = logging.getLogger(__name__)

E = EstadoEntrega

TERMINAL: Set[EstadoEntrega] = {E.devuelto, E.cancelada, E.perdida}
# Ocultos en los listados por defecto
HIDDEN: Set[EstadoEntrega] = {E.perdida, E.cancelada}
REQUIRES_CONFIRMATION: Set[EstadoEntrega] = {E.cancelada, E.devuelto}

_SIDE_EXITS = {E.perdida, E.cancelada}

TRANSITIONS: Dict[EstadoEntrega, Set[EstadoEntrega]] = {
    E.pendiente: {E.en_proceso, E.a_despachar} | _SIDE_EXITS,
    E.en_proceso: {E.a_despachar} | _SIDE_EXITS,
    E.a_despachar: {E.en_transito} | _SIDE_EXITS,
    E.en_transito: {E.entregado} | _SIDE_EXITS,
    E.entregado: {E.a_devolver} | _SIDE_EXITS,
    E.a_devolver: {E.devuelto} | _SIDE_EXITS,
    E.devuelto: set(),
    E.cancelada: set(),
    E.perdida: set(),
}

# Estados desde los que un saldo cubierto manda la orden a despacho
AUTO_DISPATCH_FROM: Set[EstadoEntrega] = {E.pendiente, E.en_proceso}


def parse_estado(value: str) -> EstadoEntrega:
    try:
        return EstadoEntrega(value)
    except ValueError:
        raise DomainError(f"Estado de entrega inválido: {value}")


def initial_status_for_channel(canal: Optional[str]) -> EstadoEntrega:
    """Cashea ya cobró al cliente: arranca En proceso. El resto arranca Pendiente."""
    if canal and canal.strip().lower() == "cashea":
        return E.en_proceso
    return E.pendiente


def allowed_targets(current: EstadoEntrega) -> Set[EstadoEntrega]:
    return TRANSITIONS[current]


def validate_transition(
    current: EstadoEntrega,
    target: EstadoEntrega,
    confirm: bool = False,
    fecha_devolucion: Optional[date] = None,
) -> None:
    if current in TERMINAL:
        raise InvalidTransition(f"La venta está en estado terminal '{current.value}' y no admite cambios")
    if target not in TRANSITIONS[current]:
        raise InvalidTransition(f"Transición no permitida: {current.value} -> {target.value}")
    if target in REQUIRES_CONFIRMATION and not confirm:
        raise DomainError(f"El cambio a '{target.value}' requiere confirmación")
    if target == E.devuelto and not fecha_devolucion:
        raise DomainError("Debe indicar la fecha de devolución antes de marcar como Devuelto")


def has_shipping_address(sale: Sale) -> bool:
    if sale.direccion_despacho_igual_facturacion:
        return bool((sale.direccion_facturacion_direccion or "").strip())
    return bool((sale.direccion_despacho_direccion or "").strip())


def transition_warnings(sale: Sale, target: EstadoEntrega) -> List[str]:
    """Advertencias de UI: no bloquean el cambio."""
    warnings = []
    if target in {E.a_despachar, E.en_transito, E.entregado} and not has_shipping_address(sale):
        warnings.append("La orden no tiene dirección de despacho")
    if target == E.entregado and not sale.fecha_cliente:
        warnings.append("La orden no tiene fecha de entrega al cliente")
    return warnings


def _has_freight(sale: Sale) -> bool:
    return bool(sale.flete_a_pagar) or bool(sale.pago_flete_usd)


def change_status(
    db: Session,
    sale: Sale,
    target: EstadoEntrega,
    *,
    confirm: bool = False,
    fecha_devolucion: Optional[date] = None,
    user: Optional[User] = None,
    notes: Optional[str] = None,
) -> List[str]:
    """
    Aplica una transición a una línea. Pedir el estado actual es un no-op.
    No hace commit. Retorna las advertencias de la transición.
    """
    current = parse_estado(sale.estado_entrega)
    if current == target:
        return []

    if fecha_devolucion is not None:
        sale.fecha_devolucion = fecha_devolucion
    validate_transition(current, target, confirm=confirm, fecha_devolucion=sale.fecha_devolucion)

    warnings = transition_warnings(sale, target)

    if target == E.a_despachar and not _has_freight(sale) and not sale.flete_gratis:
        sale.status_flete = StatusFlete.pendiente.value

    sale.estado_entrega = target.value
    create_status_history(db, "sale", sale.id, current.value, target.value, user=user, notes=notes)
    logger.info("Venta %s (orden %s): %s -> %s", sale.id, sale.orden, current.value, target.value)
    return warnings
