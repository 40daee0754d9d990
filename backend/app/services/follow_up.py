"""
Fechas de seguimiento en tres fases.

fecha1 = base + dias_fase_1, fecha2 = fecha1 + dias_fase_2, fecha3 = fecha2 + dias_fase_3.
Una fecha guardada o editada queda fijada; las fechas no fijadas se derivan de
la anterior. La propagación es solo hacia adelante.
"""
from datetime import date, timedelta
from typing import List, Optional, Sequence

PHASES = (1, 2, 3)


def cascade_dates(base: date, offsets: Sequence[int], saved: Sequence[Optional[date]] = (None, None, None)) -> List[date]:
    """Fechas efectivas: las guardadas se respetan, las vacías se calculan desde la anterior."""
    dates: List[date] = []
    previous = base
    for offset, pinned in zip(offsets, saved):
        current = pinned if pinned is not None else previous + timedelta(days=offset)
        dates.append(current)
        previous = current
    return dates


class FollowUpEditor:
    """
    Sesión de edición de un registro (el equivalente a un diálogo abierto).
    Al abrir, toda fecha ya guardada cuenta como fijada. Editar una fase la fija
    y recalcula las fases posteriores que no estén fijadas.
    """

    def __init__(self, base: date, offsets: Sequence[int], saved: Sequence[Optional[date]] = (None, None, None)):
        self.base = base
        self.offsets = list(offsets)
        self.pinned = [d is not None for d in saved]
        self._dates = cascade_dates(base, self.offsets, saved)

    @property
    def dates(self) -> List[date]:
        return list(self._dates)

    def edit(self, phase: int, value: date) -> List[date]:
        index = phase - 1
        self._dates[index] = value
        self.pinned[index] = True
        self._recompute(index + 1)
        return self.dates

    def apply_offsets(self, offsets: Sequence[int]) -> List[date]:
        """Un cambio de configuración solo mueve las fechas no fijadas."""
        self.offsets = list(offsets)
        self._recompute(0)
        return self.dates

    def _recompute(self, start: int) -> None:
        for index in range(start, len(PHASES)):
            if self.pinned[index]:
                continue
            previous = self.base if index == 0 else self._dates[index - 1]
            self._dates[index] = previous + timedelta(days=self.offsets[index])


def due_phase(dates: Sequence[Optional[date]], respuestas: Sequence[Optional[str]], today: date) -> Optional[int]:
    """Primera fase cuya fecha es hoy y que no tiene respuesta."""
    for phase, (fecha, respuesta) in zip(PHASES, zip(dates, respuestas)):
        if fecha == today and not (respuesta or "").strip():
            return phase
    return None


def phase_status(dates: Sequence[Optional[date]], respuestas: Sequence[Optional[str]], today: date) -> Optional[dict]:
    """Fase actual (primera sin respuesta) y si está vencida, es hoy o es futura."""
    for phase, (fecha, respuesta) in zip(PHASES, zip(dates, respuestas)):
        if (respuesta or "").strip():
            continue
        if fecha is None:
            return {"fase": phase, "fecha": None, "status": None}
        if fecha < today:
            status = "overdue"
        elif fecha == today:
            status = "today"
        else:
            status = "future"
        return {"fase": phase, "fecha": fecha, "status": status}
    return None
