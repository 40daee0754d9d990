"""
Conjuntos cerrados de valores usados en columnas de estado.
Cada enum se valida una sola vez en el borde (schemas / servicios) y
se refleja en la base de datos con un CHECK constraint.
"""
from enum import Enum


class EstadoEntrega(str, Enum):
    pendiente = "Pendiente"
    perdida = "Perdida"
    en_proceso = "En proceso"
    a_despachar = "A despachar"
    en_transito = "En tránsito"
    entregado = "Entregado"
    a_devolver = "A devolver"
    devuelto = "Devuelto"
    cancelada = "Cancelada"


class EstadoVerificacion(str, Enum):
    por_verificar = "Por verificar"
    verificado = "Verificado"
    rechazado = "Rechazado"


class TipoVenta(str, Enum):
    inmediato = "Inmediato"
    reserva = "Reserva"


class Frecuencia(str, Enum):
    diario = "Diario"
    semanal = "Semanal"
    quincenal = "Quincenal"
    mensual = "Mensual"
    trimestral = "Trimestral"
    semestral = "Semestral"
    anual = "Anual"


class EstadoEgreso(str, Enum):
    registrado = "registrado"
    aprobado = "aprobado"
    pagado = "pagado"
    anulado = "anulado"


class EstadoProspecto(str, Enum):
    activo = "Activo"
    perdido = "Perdido"
    convertido = "Convertido"


class TipoPago(str, Enum):
    inicial = "Inicial/Total"
    flete = "Flete"
    cuota = "Cuota"
    egreso = "Egreso"


class Moneda(str, Enum):
    usd = "USD"
    ves = "VES"


class StatusFlete(str, Enum):
    pendiente = "Pendiente"
    pagado = "Pagado"


def values(enum_cls) -> list:
    return [e.value for e in enum_cls]


def check_in(column: str, enum_cls) -> str:
    """Expresión SQL para un CHECK constraint sobre un enum."""
    quoted = ", ".join("'" + v.replace("'", "''") + "'" for v in values(enum_cls))
    return f"{column} IN ({quoted})"
