from decimal import Decimal

import pytest

from app.core.errors import PaymentValidationError
from app.services import payments_service


def test_payment_summary_scenario(client, headers, make_order):
    make_order(orden="5001", totals=(600, 400))

    r = client.put("/orders/5001/pago-inicial", json={"pago_inicial_usd": 300}, headers=headers)
    assert r.status_code == 200
    r = client.post("/orders/5001/installments", json={"pago_cuota_usd": 400}, headers=headers)
    assert r.status_code == 201
    installment_id = r.json()["installment"]["id"]

    summary = r.json()["summary"]
    assert summary["total_order_usd"] == 1000.0
    assert summary["total_pagado"] == 700.0
    assert summary["total_verificado"] == 0.0
    assert summary["saldo_pendiente"] == 300.0

    r = client.put(
        "/verification/payments",
        json={"tipo_pago": "Cuota", "estado_verificacion": "Verificado", "entity_id": installment_id},
        headers=headers,
    )
    assert r.status_code == 200

    r = client.get("/orders/5001/payments", headers=headers)
    summary = r.json()["summary"]
    assert summary["total_pagado"] == 700.0
    assert summary["total_verificado"] == 400.0
    assert summary["saldo_pendiente"] == 300.0


def test_order_fields_are_written_to_every_line(db, make_order):
    lines = make_order(orden="5002", totals=(500, 500))
    payments_service.update_pago_inicial(db, "5002", {"pago_inicial_usd": 200, "banco_receptor_inicial": "Banesco"})
    db.commit()
    for line in lines:
        db.refresh(line)
        assert line.pago_inicial_usd == Decimal("200.00")
        assert line.banco_receptor_inicial == "Banesco"


def test_installment_numbers_increment_and_duplicate_is_conflict(client, headers, make_order):
    make_order(orden="5003", totals=(1000,))
    r1 = client.post("/orders/5003/installments", json={"pago_cuota_usd": 100}, headers=headers)
    r2 = client.post("/orders/5003/installments", json={"pago_cuota_usd": 100}, headers=headers)
    assert r1.json()["installment"]["installment_number"] == 1
    assert r2.json()["installment"]["installment_number"] == 2

    r = client.post(
        "/orders/5003/installments", json={"pago_cuota_usd": 100, "installment_number": 2}, headers=headers
    )
    assert r.status_code == 409


def test_installment_must_be_positive(client, headers, make_order):
    make_order(orden="5004")
    r = client.post("/orders/5004/installments", json={"pago_cuota_usd": 0}, headers=headers)
    assert r.status_code == 400


def test_overpayment_is_rejected(db, make_order):
    make_order(orden="5005", totals=(500,))
    payments_service.update_pago_inicial(db, "5005", {"pago_inicial_usd": 400})
    with pytest.raises(PaymentValidationError):
        payments_service.create_installment(db, "5005", {"pago_cuota_usd": 150})
    # Hasta un centavo de tolerancia
    payments_service.create_installment(db, "5005", {"pago_cuota_usd": "100.01"})


def test_full_payment_dispatches_order(client, headers, db, make_order):
    lines = make_order(orden="5006", totals=(700, 300))
    client.put("/orders/5006/pago-inicial", json={"pago_inicial_usd": 500}, headers=headers)
    for line in lines:
        db.refresh(line)
        assert line.estado_entrega == "Pendiente"

    r = client.post("/orders/5006/installments", json={"pago_cuota_usd": 500}, headers=headers)
    assert r.status_code == 201
    for line in lines:
        db.refresh(line)
        assert line.estado_entrega == "A despachar"


def test_auto_dispatch_leaves_later_states_alone(db, make_order):
    sale = make_order(orden="5007", totals=(100,))[0]
    sale.estado_entrega = "En tránsito"
    db.commit()
    payments_service.update_pago_inicial(db, "5007", {"pago_inicial_usd": 100})
    assert sale.estado_entrega == "En tránsito"


def test_changing_payment_resets_verification(client, headers, db, make_order):
    sale = make_order(orden="5008", totals=(100,))[0]
    client.put("/orders/5008/pago-inicial", json={"pago_inicial_usd": 50}, headers=headers)
    client.put(
        "/verification/payments",
        json={"tipo_pago": "Inicial/Total", "estado_verificacion": "Verificado", "orden": "5008"},
        headers=headers,
    )
    db.refresh(sale)
    assert sale.estado_verificacion_inicial == "Verificado"

    client.put("/orders/5008/pago-inicial", json={"pago_inicial_usd": 60}, headers=headers)
    db.refresh(sale)
    assert sale.estado_verificacion_inicial == "Por verificar"


def test_flete_payment_sets_status(client, headers, db, make_order):
    sale = make_order(orden="5009", totals=(100,))[0]
    r = client.put("/orders/5009/flete", json={"flete_a_pagar": 20, "pago_flete_usd": 20}, headers=headers)
    assert r.status_code == 200
    db.refresh(sale)
    assert sale.status_flete == "Pagado"


def test_delete_installment(client, headers, make_order):
    make_order(orden="5010", totals=(100,))
    r = client.post("/orders/5010/installments", json={"pago_cuota_usd": 40}, headers=headers)
    installment_id = r.json()["installment"]["id"]
    r = client.delete(f"/orders/installments/{installment_id}", headers=headers)
    assert r.status_code == 200
    assert r.json()["summary"]["total_pagado"] == 0.0


def test_unknown_order_is_404(client, headers, db):
    assert client.get("/orders/nope/payments", headers=headers).status_code == 404


def test_payment_email_sent_in_background(client, headers, emails, make_order):
    make_order(orden="5011", totals=(100,), email="cliente@example.com")
    client.post("/orders/5011/installments", json={"pago_cuota_usd": 40}, headers=headers)
    assert len(emails.sent) == 1
    assert emails.sent[0]["to"] == "cliente@example.com"
    assert "Saldo pendiente: $60.00" in emails.sent[0]["text"]


def test_deleting_first_line_keeps_order_installments(client, headers, db, make_order):
    first, second = make_order(orden="5100", totals=(600, 400))
    r = client.post("/orders/5100/installments", json={"pago_cuota_usd": 300}, headers=headers)
    installment_id = r.json()["installment"]["id"]

    assert client.delete(f"/sales/{first.id}", headers=headers).status_code == 200

    r = client.get("/orders/5100/payments", headers=headers)
    body = r.json()
    assert [i["id"] for i in body["installments"]] == [installment_id]
    assert body["summary"]["total_pagado"] == 300.0
    assert body["summary"]["saldo_pendiente"] == 100.0
    db.expire_all()
    assert payments_service.get_installment(db, installment_id).sale_id == second.id

    # La última línea sí arrastra sus cuotas
    assert client.delete(f"/sales/{second.id}", headers=headers).status_code == 200
    db.expire_all()
    assert payments_service.order_installments(db, "5100") == []
