import json
from datetime import datetime

import httpx
import pytest

from app.core.config import settings
from app.models.cashea import CasheaAutomaticDownload
from app.models.sale import Sale
from app.models.upload_history import UploadHistory
from app.routes.cashea import get_cashea_client
from app.main import app as fastapi_app
from app.services import cashea_service
from app.services.cashea_service import CasheaClient, transpose_query_data

START = datetime(2026, 3, 1, 0, 0)
END = datetime(2026, 3, 1, 2, 0)

QUERY_DATA = {
    "queryData": {
        "# Orden": ["C-100", "C-100", "C-200"],
        "Nombre": ["Ana", "Ana", None],
        "Cédula": ["V123", "V123", "V456"],
        "Teléfono": ["0414", "0414", "0412"],
        "Total (USD)": [500, 80, 300],
        "Fecha": ["2026-03-01T10:00:00", "2026-03-01T10:00:00", "2026-03-01 11:30:00"],
        "Pago inicial usd": [100, 0, 60],
        "Product": ["Colchón Queen", "Almohada", None],
        "Cantidad": [1, 2, 1],
    }
}


def _client(payload=QUERY_DATA, status=200, calls=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        return httpx.Response(status, json=payload)

    return CasheaClient(
        url="https://cashea.test/query", email="ops@boxisleep.com", password="pw",
        transport=httpx.MockTransport(handler),
    )


def test_transpose_columnar_payload():
    records = transpose_query_data(QUERY_DATA)
    assert len(records) == 3
    assert records[0]["orden"] == "C-100"
    assert records[1]["product"] == "Almohada"
    assert records[2]["nombre"] == "Cliente Cashea"
    assert records[2]["product"] == "CASHEA Product"
    assert records[2]["fecha"].isoformat() == "2026-03-01"
    assert transpose_query_data([QUERY_DATA]) == records
    assert transpose_query_data({}) == []


def test_download_inserts_new_orders_and_skips_known_ones(db):
    calls = []
    result = cashea_service.download_orders(db, START, END, _client(calls=calls))
    assert result["success"] is True
    assert result["records_count"] == 3
    assert result["ordenes"] == ["C-100", "C-200"]

    body = json.loads(calls[0].content)
    assert body["userParams"]["queryParams"]["0"] == "Boxi Sleep"
    assert calls[0].headers["authorization"].startswith("Basic ")

    sales = db.query(Sale).order_by(Sale.id).all()
    assert {s.estado_entrega for s in sales} == {"En proceso"}
    assert {s.canal for s in sales} == {"cashea"}

    # Ventana solapada: nada nuevo
    again = cashea_service.download_orders(db, START, END, _client())
    assert again["records_count"] == 0
    assert again["duplicates_ignored"] == 2
    assert again["message"] == "2 duplicate order(s) ignored"
    assert db.query(Sale).count() == 3
    assert db.query(UploadHistory).count() == 2


def test_download_failure_is_recorded(db):
    result = cashea_service.download_orders(db, START, END, _client(status=500))
    assert result["success"] is False
    assert "500" in result["message"]
    history = db.query(UploadHistory).one()
    assert history.status == "error"


def test_missing_credentials_fail_without_http_call(db):
    client = CasheaClient(email="", password="")
    result = cashea_service.download_orders(db, START, END, client)
    assert result["success"] is False


def test_download_route_maps_failure_to_502(client, headers):
    fastapi_app.dependency_overrides[get_cashea_client] = lambda: _client(status=503)
    r = client.post(
        "/cashea/download",
        json={"start_date": START.isoformat(), "end_date": END.isoformat()},
        headers=headers,
    )
    assert r.status_code == 502


def test_automation_config_and_run(client, headers, db):
    r = client.get("/cashea/automation", headers=headers)
    assert r.json() == {"enabled": False, "frequency": "2 hours"}

    r = client.put("/cashea/automation", json={"enabled": True, "frequency": "15 minutes"}, headers=headers)
    assert r.status_code == 400
    r = client.put("/cashea/automation", json={"enabled": True, "frequency": "30 minutes"}, headers=headers)
    assert r.json() == {"enabled": True, "frequency": "30 minutes"}

    run = cashea_service.run_automatic_download(db, _client(), now=END)
    assert run.status == "success"
    assert run.start_date == datetime(2026, 3, 1, 1, 30)
    assert db.query(CasheaAutomaticDownload).count() == 1


SHOPIFY_ORDER = {
    "name": "#1050",
    "email": "cliente@example.com",
    "created_at": "2026-03-05T14:20:00-04:00",
    "billing_address": {
        "first_name": "Pedro", "last_name": "Gómez", "phone": "0414", "country": "Venezuela",
        "province": "Miranda", "city": "Caracas", "address1": "Calle 1",
    },
    "line_items": [
        {"name": "Colchón Queen", "sku": "CQ", "quantity": 2, "price": "350.00"},
        {"name": "Colchón King RESERVA", "sku": "CK", "quantity": 1, "price": "900.00"},
    ],
}


def test_shopify_webhook_creates_lines_and_dedupes(client, db):
    r = client.post("/webhooks/shopify", json=SHOPIFY_ORDER)
    assert r.status_code == 200
    body = r.json()
    assert body["created"] == 2
    assert body["total_usd"] == 1600.0

    sales = db.query(Sale).order_by(Sale.id).all()
    assert [s.tipo for s in sales] == ["Inmediato", "Reserva"]
    assert sales[0].nombre == "Pedro Gómez"
    assert sales[0].estado_entrega == "Pendiente"
    assert sales[0].canal == "shopify"

    # Reenvío con una línea nueva y otra repetida (distinto uso de mayúsculas)
    resend = dict(SHOPIFY_ORDER, line_items=[
        {"name": "colchón queen", "quantity": 2, "price": "350.00"},
        {"name": "Almohada", "quantity": 1, "price": "40.00"},
    ])
    r = client.post("/webhooks/shopify", json=resend)
    assert r.json()["created"] == 1
    assert r.json()["duplicates_ignored"] == 1
    assert db.query(Sale).count() == 3


def test_shopify_mompox_brand(client, db):
    r = client.post("/webhooks/shopify", params={"brand": "mompox"}, json=SHOPIFY_ORDER)
    assert r.json()["canal"] == "ShopMom"
    r = client.post("/webhooks/shopify", params={"brand": "otra"}, json=SHOPIFY_ORDER)
    assert r.status_code == 400


def test_webhook_secret_is_enforced(client, db, monkeypatch):
    monkeypatch.setattr(settings, "webhook_secret", "s3cret")
    assert client.post("/webhooks/shopify", json=SHOPIFY_ORDER).status_code == 401
    r = client.post("/webhooks/shopify", json=SHOPIFY_ORDER, headers={"X-Webhook-Token": "s3cret"})
    assert r.status_code == 200


def test_treble_address_correction(client, db, make_order):
    lines = make_order(orden="9001", totals=(100, 50))
    r = client.post("/webhooks/treble", json={
        "orden": "9001", "ciudad": "Valencia", "direccion": "Av. Bolívar", "referencia": "Frente a la plaza",
    })
    assert r.status_code == 200
    assert r.json() == {"orden": "9001", "updated": 2}
    for line in lines:
        db.refresh(line)
        assert line.direccion_despacho_ciudad == "Valencia"
        assert line.direccion_despacho_igual_facturacion is False


def test_treble_unknown_order_is_404(client, db):
    r = client.post("/webhooks/treble", json={"orden": "nope", "ciudad": "Valencia"})
    assert r.status_code == 404


@pytest.mark.parametrize("canal,brand", [("ShopMom", "mompox"), ("MP-Tienda", "mompox"), ("shopify", "boxisleep")])
def test_brand_for_canal(canal, brand):
    from app.services.email_service import brand_for_canal

    assert brand_for_canal(canal) == brand
