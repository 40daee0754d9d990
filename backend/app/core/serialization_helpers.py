"""
Helpers genéricos de serialización.
NO contiene lógica de negocio, solo utilidades de formato.
"""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

CENT = Decimal("0.01")


def serialize_decimal(value):
    """Convierte Decimal a float para serialización JSON"""
    if value is None:
        return None
    return float(value)


def serialize_datetime(value):
    """Convierte date/datetime a string ISO para serialización JSON"""
    if value is None:
        return None
    return value.isoformat()


def to_decimal(value) -> Decimal:
    """None / vacío cuentan como 0."""
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value)).quantize(CENT)
    except InvalidOperation:
        raise ValueError(f"Monto inválido: {value}")


def parse_date(value):
    """Acepta date, datetime o string ISO (con o sin hora)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if "T" in text:
        text = text.split("T", 1)[0]
    elif " " in text:
        text = text.split(" ", 1)[0]
    return date.fromisoformat(text)


def row_to_dict(obj) -> dict:
    """Columnas de un modelo ORM a dict JSON-serializable."""
    data = {}
    for column in obj.__table__.columns:
        value = getattr(obj, column.key)
        if isinstance(value, Decimal):
            value = serialize_decimal(value)
        elif isinstance(value, (date, datetime)):
            value = serialize_datetime(value)
        data[column.key] = value
    return data


def serialize_money(data: dict) -> dict:
    return {k: serialize_decimal(v) if isinstance(v, Decimal) else v for k, v in data.items()}
