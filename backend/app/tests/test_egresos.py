from datetime import date

import pytest

from app.core.errors import DomainError, InvalidTransition
from app.models.egreso import Egreso
from app.services import egresos_service
from app.services.recurrence import add_months, next_occurrence_date, series_dates


def test_month_end_is_clamped():
    assert add_months(date(2026, 1, 31), 1) == date(2026, 2, 28)
    assert add_months(date(2028, 1, 31), 1) == date(2028, 2, 29)
    assert add_months(date(2026, 11, 30), 3) == date(2027, 2, 28)


def test_next_occurrence_by_frequency():
    base = date(2026, 3, 15)
    assert next_occurrence_date(base, "Diario") == date(2026, 3, 16)
    assert next_occurrence_date(base, "Semanal") == date(2026, 3, 22)
    assert next_occurrence_date(base, "Quincenal") == date(2026, 3, 30)
    assert next_occurrence_date(base, "Mensual") == date(2026, 4, 15)
    assert next_occurrence_date(base, "Trimestral") == date(2026, 6, 15)
    assert next_occurrence_date(base, "Semestral") == date(2026, 9, 15)
    assert next_occurrence_date(base, "Anual") == date(2027, 3, 15)


def test_series_dates_chain_from_previous_occurrence():
    assert series_dates(date(2026, 1, 31), "Mensual", 3) == [
        date(2026, 1, 31), date(2026, 2, 28), date(2026, 3, 28),
    ]
    with pytest.raises(ValueError):
        series_dates(date(2026, 1, 1), "Mensual", 0)


def _recurrent(db, **overrides):
    data = {
        "descripcion": "Alquiler galpón",
        "monto": 500,
        "moneda": "USD",
        "fecha": date(2026, 1, 1),
        "fecha_compromiso": date(2026, 1, 31),
        "es_recurrente": True,
        "frecuencia_recurrencia": "Mensual",
        "numero_repeticiones": 3,
    }
    data.update(overrides)
    egreso = egresos_service.create_egreso(db, data)
    db.commit()
    return egreso


def test_recurring_creates_only_first_occurrence(db):
    first = _recurrent(db)
    assert first.numero_en_serie == 1
    assert first.serie_recurrencia_id
    assert db.query(Egreso).count() == 1


def test_process_generates_one_occurrence_per_run_until_complete(db):
    first = _recurrent(db)
    serie = first.serie_recurrencia_id

    created = egresos_service.process_recurring_series(db, today=date(2026, 2, 1))
    assert len(created) == 1
    second = db.query(Egreso).filter_by(serie_recurrencia_id=serie, numero_en_serie=2).one()
    assert second.fecha_compromiso == date(2026, 2, 28)
    assert second.estado == "registrado"
    assert second.numero_egreso == first.numero_egreso + 1

    egresos_service.process_recurring_series(db, today=date(2026, 3, 1))
    third = db.query(Egreso).filter_by(serie_recurrencia_id=serie, numero_en_serie=3).one()
    assert third.fecha_compromiso == date(2026, 3, 28)

    # Serie completa
    assert egresos_service.process_recurring_series(db, today=date(2026, 4, 1)) == []
    assert db.query(Egreso).filter_by(serie_recurrencia_id=serie).count() == 3


def test_process_skips_when_next_date_is_not_in_the_future(db):
    _recurrent(db)
    assert egresos_service.process_recurring_series(db, today=date(2026, 2, 28)) == []


def test_cancelled_series_stops(db):
    first = _recurrent(db)
    egresos_service.anular_egreso(db, first.id)
    db.commit()
    assert egresos_service.process_recurring_series(db, today=date(2026, 2, 1)) == []


def test_series_preview(db):
    first = _recurrent(db)
    preview = egresos_service.series_preview(db, first.serie_recurrencia_id)
    assert [p["fecha_compromiso"] for p in preview] == [date(2026, 1, 31), date(2026, 2, 28), date(2026, 3, 28)]
    assert preview[0]["egreso_id"] == first.id
    assert preview[1]["egreso_id"] is None


def test_recurring_requires_frequency_and_repetitions(db):
    with pytest.raises(DomainError):
        _recurrent(db, frecuencia_recurrencia=None)
    db.rollback()
    with pytest.raises(DomainError):
        _recurrent(db, numero_repeticiones=0)


def test_approval_flow(db):
    egreso = egresos_service.create_egreso(db, {"descripcion": "Camión", "monto": 120, "requiere_aprobacion": True})
    with pytest.raises(InvalidTransition):
        egresos_service.register_payment(db, egreso.id, {})
    egresos_service.approve_egreso(db, egreso.id, "ok")
    egresos_service.register_payment(db, egreso.id, {"referencia_pago": "REF-1"})
    assert egreso.estado == "pagado"
    assert egreso.monto_pagado == egreso.monto
    assert egreso.estado_verificacion == "Por verificar"
    with pytest.raises(InvalidTransition):
        egresos_service.anular_egreso(db, egreso.id)


def test_egresos_routes(client, headers):
    r = client.post("/egresos/", json={"descripcion": "Internet", "monto": 40}, headers=headers)
    assert r.status_code == 201
    egreso = r.json()
    assert egreso["numero_egreso"] == 1001
    assert egreso["moneda"] == "USD"

    r = client.post("/egresos/", json={"descripcion": "Nada", "monto": -5}, headers=headers)
    assert r.status_code == 400

    r = client.post(f"/egresos/{egreso['id']}/pagar", json={"referencia_pago": "123"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["estado"] == "pagado"

    r = client.get("/verification/payments", params={"tipo_pago": "Egreso"}, headers=headers)
    assert r.json()["total"] == 1
    assert r.json()["items"][0]["entity_id"] == egreso["id"]

    r = client.post(f"/egresos/{egreso['id']}/anular", json={}, headers=headers)
    assert r.status_code == 409
