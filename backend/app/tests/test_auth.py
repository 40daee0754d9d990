def test_login_me_and_refresh(client, admin_user):
    r = client.post("/auth/login", json={"email": "admin@boxisleep.com", "password": "secret123"})
    assert r.status_code == 200
    tokens = r.json()
    assert "access_token" in tokens

    r = client.get("/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert r.status_code == 200
    assert r.json()["role"] == "admin"

    r = client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert r.status_code == 200

    # Un refresh token no sirve como access token
    r = client.get("/auth/me", headers={"Authorization": f"Bearer {tokens['refresh_token']}"})
    assert r.status_code == 401


def test_login_rejects_bad_password(client, admin_user):
    r = client.post("/auth/login", json={"email": "admin@boxisleep.com", "password": "nope"})
    assert r.status_code == 401


def test_requests_without_token_are_rejected(client, db):
    assert client.get("/sales/").status_code == 401


def test_admin_routes_require_admin(client, staff_headers, headers):
    r = client.get("/admin/users", headers=staff_headers)
    assert r.status_code == 403
    r = client.get("/admin/users", headers=headers)
    assert r.status_code == 200


def test_health_reports_scheduler_stopped(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "scheduler_running": False}
