from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.enums import EstadoEntrega as E
from app.core.errors import DomainError, InvalidTransition
from app.models.status_history import StatusHistory
from app.services import delivery_status, sales_service


def test_initial_status_depends_on_channel(make_order):
    cashea = make_order(orden="C-1", canal="cashea")[0]
    shopify = make_order(orden="S-1", canal="shopify")[0]
    assert cashea.estado_entrega == E.en_proceso.value
    assert shopify.estado_entrega == E.pendiente.value


def test_happy_path_and_history(db, make_order):
    sale = make_order(
        orden="2001",
        direccion_despacho_igual_facturacion=True,
        direccion_facturacion_direccion="Av. Principal",
        fecha_cliente=date(2026, 3, 10),
    )[0]
    for target in (E.en_proceso, E.a_despachar, E.en_transito, E.entregado):
        assert delivery_status.change_status(db, sale, target) == []
    db.commit()
    assert sale.estado_entrega == "Entregado"

    rows = db.query(StatusHistory).filter_by(entity_type="sale", entity_id=sale.id).order_by(StatusHistory.id).all()
    assert [r.new_status for r in rows] == ["Pendiente", "En proceso", "A despachar", "En tránsito", "Entregado"]
    assert rows[-1].user_email == "system"


def test_illegal_jump_is_rejected(db, make_order):
    sale = make_order(orden="2002")[0]
    with pytest.raises(InvalidTransition):
        delivery_status.change_status(db, sale, E.entregado)


def test_same_state_is_noop(db, make_order):
    sale = make_order(orden="2003")[0]
    assert delivery_status.change_status(db, sale, E.pendiente) == []
    assert db.query(StatusHistory).filter_by(entity_id=sale.id).count() == 1


def test_cancel_requires_confirmation_and_is_terminal(db, make_order):
    sale = make_order(orden="2004")[0]
    with pytest.raises(DomainError):
        delivery_status.change_status(db, sale, E.cancelada)
    delivery_status.change_status(db, sale, E.cancelada, confirm=True)
    with pytest.raises(InvalidTransition):
        delivery_status.change_status(db, sale, E.pendiente)


def test_devuelto_requires_fecha_devolucion(db, make_order):
    sale = make_order(orden="2005")[0]
    sale.estado_entrega = E.a_devolver.value
    with pytest.raises(DomainError):
        delivery_status.change_status(db, sale, E.devuelto, confirm=True)
    delivery_status.change_status(db, sale, E.devuelto, confirm=True, fecha_devolucion=date(2026, 4, 1))
    assert sale.estado_entrega == "Devuelto"
    assert sale.fecha_devolucion == date(2026, 4, 1)


def test_warnings_do_not_block(db, make_order):
    sale = make_order(orden="2006")[0]
    warnings = delivery_status.change_status(db, sale, E.a_despachar)
    assert sale.estado_entrega == "A despachar"
    assert "La orden no tiene dirección de despacho" in warnings


def test_dispatch_without_freight_marks_flete_pending(db, make_order):
    sale = make_order(orden="2007")[0]
    delivery_status.change_status(db, sale, E.a_despachar)
    assert sale.status_flete == "Pendiente"

    gratis = make_order(orden="2008", flete_gratis=True)[0]
    delivery_status.change_status(db, gratis, E.a_despachar)
    assert gratis.status_flete is None


def test_status_route(client, headers, make_order):
    sale = make_order(orden="2009")[0]
    r = client.put(f"/sales/{sale.id}/estado-entrega", json={"estado_entrega": "Entregado"}, headers=headers)
    assert r.status_code == 409

    r = client.put(f"/sales/{sale.id}/estado-entrega", json={"estado_entrega": "Cancelada"}, headers=headers)
    assert r.status_code == 400

    r = client.put(
        f"/sales/{sale.id}/estado-entrega",
        json={"estado_entrega": "A despachar", "notes": "cliente confirmó"},
        headers=headers,
    )
    assert r.status_code == 200
    body = r.json()
    assert body["sale"]["estado_entrega"] == "A despachar"
    assert body["warnings"]

    r = client.get(f"/status-history/sale/{sale.id}", headers=headers)
    assert r.status_code == 200
    # Más reciente primero
    assert r.json()[0]["user_email"] == "admin@boxisleep.com"


def test_hidden_states_are_filtered_from_listing(client, headers, db, make_order):
    visible = make_order(orden="3001")[0]
    hidden = make_order(orden="3002")[0]
    delivery_status.change_status(db, hidden, E.perdida)
    db.commit()

    r = client.get("/sales/", headers=headers)
    assert [s["orden"] for s in r.json()["items"]] == [visible.orden]

    r = client.get("/sales/", params={"include_hidden": True}, headers=headers)
    assert r.json()["total"] == 2

    r = client.get("/sales/", params={"estado_entrega": "Perdida"}, headers=headers)
    assert [s["orden"] for s in r.json()["items"]] == ["3002"]


def test_order_history_covers_every_line(client, headers, db, make_order):
    first, second = make_order(orden="3100", totals=(100, 200))
    delivery_status.change_status(db, second, E.en_proceso)
    db.commit()

    r = client.get("/status-history/orden/3100", headers=headers)
    assert r.status_code == 200
    entries = r.json()
    assert {e["entity_id"] for e in entries} == {first.id, second.id}
    assert entries[0]["new_status"] == "En proceso"
    assert entries[0]["user_email"] == "system"

    assert client.get("/status-history/orden/nope", headers=headers).status_code == 404
    assert client.get("/status-history/pedido/1", headers=headers).status_code == 400


def test_unknown_delivery_status_is_rejected_by_database(db, make_order):
    sale = make_order(orden="3200")[0]
    sale.estado_entrega = "Enviado"
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()
    db.refresh(sale)
    assert sale.estado_entrega == E.pendiente.value


def test_unknown_delivery_status_is_rejected_on_input(client, headers, make_order):
    with pytest.raises(DomainError):
        delivery_status.parse_estado("Enviado")
    with pytest.raises(DomainError):
        sales_service.normalize_record(
            {"orden": "3201", "canal": "manual", "nombre": "X", "product": "Base", "total_usd": 10,
             "estado_entrega": "Enviado"}
        )

    sale = make_order(orden="3202")[0]
    r = client.put(f"/sales/{sale.id}/estado-entrega", json={"estado_entrega": "Enviado"}, headers=headers)
    assert r.status_code == 422
    assert client.get(f"/sales/{sale.id}", headers=headers).json()["estado_entrega"] == "Pendiente"
