"""
Cálculo de fechas para egresos recurrentes.
Funciones puras: sin acceso a base de datos.
"""
import calendar
from datetime import date, timedelta
from typing import List

from app.core.enums import Frecuencia

DAY_STEPS = {
    Frecuencia.diario: 1,
    Frecuencia.semanal: 7,
    Frecuencia.quincenal: 15,
}

MONTH_STEPS = {
    Frecuencia.mensual: 1,
    Frecuencia.trimestral: 3,
    Frecuencia.semestral: 6,
    Frecuencia.anual: 12,
}


def add_months(value: date, months: int) -> date:
    """Mismo día N meses después, ajustado al último día del mes destino (31 ene + 1 = 28/29 feb)."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(value.day, last_day))


def next_occurrence_date(value: date, frecuencia) -> date:
    freq = Frecuencia(frecuencia)
    if freq in DAY_STEPS:
        return value + timedelta(days=DAY_STEPS[freq])
    return add_months(value, MONTH_STEPS[freq])


def series_dates(first: date, frecuencia, repeticiones: int) -> List[date]:
    """Fechas 1..N aplicando la regla de frecuencia sobre la ocurrencia anterior."""
    if repeticiones < 1:
        raise ValueError("numero_repeticiones debe ser al menos 1")
    dates = [first]
    while len(dates) < repeticiones:
        dates.append(next_occurrence_date(dates[-1], frecuencia))
    return dates
