from datetime import datetime

from app.models.job_run import JobRun


def test_user_management_requires_admin(client, headers, staff_headers):
    assert client.get("/admin/users", headers=staff_headers).status_code == 403

    r = client.post("/admin/users", json={"email": "nuevo@boxisleep.com", "password": "clave123"}, headers=headers)
    assert r.status_code == 200
    user = r.json()
    assert user["role"] == "staff"
    assert user["activo"] is True

    r = client.post("/admin/users", json={"email": "nuevo@boxisleep.com", "password": "otra"}, headers=headers)
    assert r.status_code == 400

    r = client.put(f"/admin/users/{user['id']}", json={"activo": False}, headers=headers)
    assert r.json()["activo"] is False
    r = client.post("/auth/login", json={"email": "nuevo@boxisleep.com", "password": "clave123"})
    assert r.status_code == 401


def test_asesores_catalog(client, headers, staff_headers):
    r = client.post("/admin/asesores", json={"nombre": " Ana "}, headers=headers)
    assert r.status_code == 200
    assert r.json()["nombre"] == "Ana"
    assert client.post("/admin/asesores", json={"nombre": "Ana"}, headers=headers).status_code == 409
    client.post("/admin/asesores", json={"nombre": "Beto", "activo": False}, headers=headers)

    r = client.get("/admin/asesores", params={"activo": True}, headers=staff_headers)
    assert [a["nombre"] for a in r.json()] == ["Ana"]


def test_bancos_catalog(client, headers):
    r = client.post("/admin/bancos", json={"banco": "Banesco", "tipo": "Otro"}, headers=headers)
    assert r.status_code == 400
    r = client.post("/admin/bancos", json={"banco": "Banesco", "numero_cuenta": "0134"}, headers=headers)
    banco_id = r.json()["id"]
    assert client.get("/admin/bancos", headers=headers).json()[0]["tipo"] == "Receptor"
    assert client.delete(f"/admin/bancos/{banco_id}", headers=headers).json() == {"deleted": banco_id}
    assert client.delete(f"/admin/bancos/{banco_id}", headers=headers).status_code == 404


def test_job_runs_listing(client, headers, db):
    started = datetime(2026, 3, 1, 8, 0)
    db.add_all([
        JobRun(job_name="egresos_recurrentes", status="success", message="0 ocurrencia(s) creada(s)",
               started_at=started, finished_at=started),
        JobRun(job_name="cashea_download", status="error", message="RuntimeError: x",
               started_at=started, finished_at=started),
    ])
    db.commit()

    r = client.get("/admin/jobs", params={"job_name": "cashea_download"}, headers=headers)
    runs = r.json()
    assert len(runs) == 1
    assert runs[0]["status"] == "error"
    assert runs[0]["started_at"] == "2026-03-01T08:00:00"
