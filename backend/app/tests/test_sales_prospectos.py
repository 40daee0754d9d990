from app.models.prospecto import Prospecto
from app.models.sale import Sale


def test_manual_order_gets_sequential_number_and_email(client, headers, emails, make_order):
    make_order(orden="10002", totals=(10,))  # número ya usado por otro canal
    payload = {
        "nombre": "Carlos Ruiz",
        "email": "carlos@example.com",
        "products": [
            {"product": "Colchón Queen", "total_usd": 450},
            {"product": "Almohada", "cantidad": 2, "total_usd": 60},
        ],
    }
    r1 = client.post("/sales/manual", json=payload, headers=headers)
    assert r1.status_code == 201
    assert r1.json()["orden"] == "10001"
    assert len(r1.json()["sales"]) == 2

    r2 = client.post("/sales/manual", json=payload, headers=headers)
    assert r2.json()["orden"] == "10003"

    assert len(emails.sent) == 2
    assert "Total: $510.00" in emails.sent[0]["text"]
    assert emails.sent[0]["brand"] == "boxisleep"


def test_manual_order_validation(client, headers, make_order):
    r = client.post("/sales/manual", json={"nombre": "X", "products": []}, headers=headers)
    assert r.status_code == 400

    reserva = {"nombre": "X", "tipo": "Reserva", "products": [{"product": "Base", "total_usd": 100}]}
    r = client.post("/sales/manual", json=reserva, headers=headers)
    assert r.status_code == 400

    reserva["fecha_entrega"] = "2026-06-01"
    r = client.post("/sales/manual", json=reserva, headers=headers)
    assert r.status_code == 201

    make_order(orden="ABC-1")
    r = client.post(
        "/sales/manual",
        json={"orden": "ABC-1", "nombre": "X", "products": [{"product": "Base", "total_usd": 100}]},
        headers=headers,
    )
    assert r.status_code == 400


def test_order_view_and_patch(client, headers, make_order):
    lines = make_order(orden="4001", totals=(300, 200))
    r = client.get("/sales/orders/4001", headers=headers)
    assert r.status_code == 200
    assert len(r.json()["lines"]) == 2
    assert r.json()["payments"]["saldo_pendiente"] == 500.0

    r = client.patch(f"/sales/{lines[0].id}", json={"nro_guia": "MRW-123", "total_usd": -1}, headers=headers)
    assert r.status_code == 400
    r = client.patch(f"/sales/{lines[0].id}", json={"nro_guia": "MRW-123"}, headers=headers)
    assert r.json()["nro_guia"] == "MRW-123"

    r = client.get(f"/sales/{lines[0].id}", headers=headers)
    assert set(r.json()["allowed_transitions"]) == {"En proceso", "A despachar", "Perdida", "Cancelada"}


def test_delete_sale_is_admin_only(client, headers, staff_headers, make_order):
    sale = make_order(orden="4002")[0]
    assert client.delete(f"/sales/{sale.id}", headers=staff_headers).status_code == 403
    assert client.delete(f"/sales/{sale.id}", headers=headers).status_code == 200
    assert client.get(f"/sales/{sale.id}", headers=headers).status_code == 404


def test_prospect_lifecycle_and_conversion(client, headers, db):
    r = client.post("/prospectos/", json={
        "nombre": "Lucía",
        "telefono": "04141112233",
        "products": [{"producto": "Colchón Queen", "cantidad": 1, "total_usd": 420}],
        "direccion_facturacion_ciudad": "Maracay",
    }, headers=headers)
    assert r.status_code == 201
    prospecto = r.json()
    assert prospecto["prospecto"] == "P-0001"
    assert prospecto["estado_prospecto"] == "Activo"

    r = client.put(f"/prospectos/{prospecto['id']}/estado", json={"estado_prospecto": "Convertido"}, headers=headers)
    assert r.status_code == 400

    r = client.post(f"/prospectos/{prospecto['id']}/convertir", json={}, headers=headers)
    assert r.status_code == 201
    orden = r.json()["orden"]
    sale = db.query(Sale).filter(Sale.orden == orden).one()
    assert sale.product == "Colchón Queen"
    assert float(sale.total_usd) == 420.0
    assert sale.direccion_facturacion_ciudad == "Maracay"

    db.expire_all()
    converted = db.query(Prospecto).one()
    assert converted.estado_prospecto == "Convertido"
    assert converted.orden_convertida == orden

    r = client.post(f"/prospectos/{prospecto['id']}/convertir", json={}, headers=headers)
    assert r.status_code == 409
    r = client.put(f"/prospectos/{prospecto['id']}/estado", json={"estado_prospecto": "Activo"}, headers=headers)
    assert r.status_code == 409


def test_prospect_requires_phone(client, headers):
    r = client.post("/prospectos/", json={"nombre": "Sin teléfono", "telefono": "  "}, headers=headers)
    assert r.status_code == 400


def test_verification_is_one_way(client, headers, make_order):
    make_order(orden="4100", totals=(100,))
    client.put("/orders/4100/pago-inicial", json={"pago_inicial_usd": 50, "fecha_pago_inicial": "2026-03-02"},
               headers=headers)

    r = client.get("/verification/payments", params={"estado_verificacion": "Por verificar"}, headers=headers)
    items = r.json()["items"]
    assert len(items) == 1
    assert items[0]["tipo_pago"] == "Inicial/Total"
    assert items[0]["fecha"] == "2026-03-02"

    body = {"tipo_pago": "Inicial/Total", "estado_verificacion": "Rechazado", "orden": "4100", "notas": "No aparece"}
    assert client.put("/verification/payments", json=body, headers=headers).status_code == 200
    body["estado_verificacion"] = "Verificado"
    assert client.put("/verification/payments", json=body, headers=headers).status_code == 409
    body["estado_verificacion"] = "Por verificar"
    assert client.put("/verification/payments", json=body, headers=headers).status_code == 400


def test_unrecorded_payment_cannot_be_verified(client, headers, db, make_order):
    sale = make_order(orden="4150", totals=(100,))[0]
    for tipo in ("Inicial/Total", "Flete"):
        body = {"tipo_pago": tipo, "estado_verificacion": "Verificado", "orden": "4150"}
        r = client.put("/verification/payments", json=body, headers=headers)
        assert r.status_code == 400
    db.refresh(sale)
    assert sale.estado_verificacion_inicial == "Por verificar"
    assert sale.estado_verificacion_flete == "Por verificar"


def test_verification_list_is_sorted_and_paginated(client, headers, make_order):
    for orden, fecha in (("4201", "2026-03-05"), ("4202", "2026-03-01"), ("4203", None)):
        make_order(orden=orden, totals=(100,))
        data = {"pago_inicial_usd": 10}
        if fecha:
            data["fecha_pago_inicial"] = fecha
        client.put(f"/orders/{orden}/pago-inicial", json=data, headers=headers)

    r = client.get("/verification/payments", params={"limit": 2}, headers=headers)
    body = r.json()
    assert body["total"] == 3
    assert [i["orden"] for i in body["items"]] == ["4202", "4201"]
    r = client.get("/verification/payments", params={"limit": 2, "offset": 2}, headers=headers)
    assert [i["orden"] for i in r.json()["items"]] == ["4203"]
