"""
Servicio centralizado de correlativos.
Genera números de orden manual, números de egreso y códigos de prospecto
usando SequenceCounter.
"""
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.sequence_counter import SequenceCounter


# Primer valor de cada secuencia
SEQUENCE_STARTS = {
    "ORDEN": lambda: settings.manual_order_start,
    "EGRESO": lambda: 1001,
    "PROSPECTO": lambda: 1,
}


def get_next_seq(db: Session, tipo: str) -> int:
    """
    Obtiene el siguiente número de secuencia para un tipo.
    Crea el contador si no existe.

    Usa with_for_update() para evitar condiciones de carrera en Postgres.
    NO hace commit - el caller debe hacer commit después de asignar el número.
    """
    if tipo not in SEQUENCE_STARTS:
        raise ValueError(f"Tipo de secuencia inválido: {tipo}")

    counter = db.query(SequenceCounter).filter(
        SequenceCounter.tipo == tipo
    ).with_for_update().first()

    if not counter:
        counter = SequenceCounter(tipo=tipo, next_seq=SEQUENCE_STARTS[tipo]())
        db.add(counter)
        db.flush()

    current_seq = counter.next_seq
    counter.next_seq += 1
    return current_seq


def next_manual_order(db: Session) -> str:
    return str(get_next_seq(db, "ORDEN"))


def next_numero_egreso(db: Session) -> int:
    return get_next_seq(db, "EGRESO")


def next_prospecto_code(db: Session) -> str:
    """Formato P-0001"""
    return f"P-{str(get_next_seq(db, 'PROSPECTO')).zfill(4)}"
