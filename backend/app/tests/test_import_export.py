from io import BytesIO

import pandas as pd

from app.models.payment_installment import PaymentInstallment
from app.models.sale import Sale
from app.models.upload_history import UploadHistory
from app.services import payments_service

HEADER = "Orden,Nombre,Telefono,Product,Total USD,Fecha\n"


def _csv(rows):
    return (HEADER + "".join(f"{r}\n" for r in rows)).encode("utf-8")


def _upload(client, headers, content, mode="add", canal="shopify", filename="ventas.csv"):
    return client.post(
        "/import/sales",
        files={"file": (filename, content, "text/csv")},
        data={"canal": canal, "mode": mode},
        headers=headers,
    )


FIVE_ROWS = [
    "8001,Ana,0414,Colchón Queen,500,2026-03-01",
    "8001,Ana,0414,Almohada,50,2026-03-01",
    "8002,Beto,0412,Colchón King,800,2026-03-02",
    "8003,Carla,0424,Base,300,2026-03-02",
    "8004,Dani,0416,Colchón Full,450,2026-03-03",
]


def test_add_mode_skips_existing_orders(client, headers, db, make_order):
    make_order(orden="8002", totals=(800,))
    r = _upload(client, headers, _csv(FIVE_ROWS))
    assert r.status_code == 200
    body = r.json()
    assert body["inserted"] == 4
    assert body["duplicates_ignored"] == 1
    assert db.query(Sale).count() == 5

    history = db.query(UploadHistory).order_by(UploadHistory.id.desc()).first()
    assert history.status == "success"
    assert history.error_message == "1 duplicate order(s) ignored"


def test_invalid_row_rejects_whole_file(client, headers, db):
    rows = FIVE_ROWS[:2] + ["8009,,0414,Colchón,100,2026-03-01"]
    r = _upload(client, headers, _csv(rows))
    assert r.status_code == 400
    assert "Registro 3" in r.json()["detail"]
    assert db.query(Sale).count() == 0
    assert db.query(UploadHistory).one().status == "error"


def test_replace_and_undo_restores_previous_rows(client, headers, db, make_order):
    original = make_order(orden="8001", totals=(999,))[0]
    original_id = original.id
    payments_service.create_installment(db, "8001", {"pago_cuota_usd": 100})
    db.commit()

    r = _upload(client, headers, _csv(FIVE_ROWS), mode="replace")
    assert r.status_code == 200
    assert r.json()["replaced"] == 1
    assert r.json()["inserted"] == 5
    assert db.query(Sale).filter(Sale.orden == "8001").count() == 2
    assert db.query(PaymentInstallment).count() == 0

    r = client.post("/import/sales/undo", headers=headers)
    assert r.status_code == 200
    assert r.json() == {"batch_id": r.json()["batch_id"], "removed": 5, "restored": 1}

    db.expire_all()
    sales = db.query(Sale).all()
    assert [(s.id, s.orden, float(s.total_usd)) for s in sales] == [(original_id, "8001", 999.0)]
    installment = db.query(PaymentInstallment).one()
    assert installment.sale_id == original_id

    # Solo un nivel de deshacer
    assert client.post("/import/sales/undo", headers=headers).status_code == 404


def test_invalid_canal_and_extension(client, headers):
    assert _upload(client, headers, _csv(FIVE_ROWS), canal="tiktok").status_code == 400
    assert _upload(client, headers, b"x", filename="ventas.txt").status_code == 400


def test_export_sales_xlsx(client, headers, make_order):
    make_order(orden="8100", totals=(100, 200))
    r = client.get("/export/sales", headers=headers)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("application/vnd.openxmlformats")
    df = pd.read_excel(BytesIO(r.content))
    assert list(df["Orden"].astype(str)) == ["8100", "8100"]
    assert sorted(df["Total USD"].tolist()) == [100.0, 200.0]


def test_import_egresos(client, headers):
    content = "Descripcion,Monto,Moneda,Fecha\nLuz,35.5,USD,2026-03-01\nAgua,12,USD,2026-03-02\n".encode()
    r = client.post(
        "/import/egresos", files={"file": ("egresos.csv", content, "text/csv")}, headers=headers
    )
    assert r.status_code == 200
    assert r.json() == {"inserted": 2}
    r = client.get("/egresos/", headers=headers)
    assert r.json()["total"] == 2
