import os

os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["EMAIL_ENABLED"] = "false"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"

from datetime import date

import pytest
from fastapi.testclient import TestClient

import app.models  # noqa: F401
from app.core.database import SessionLocal, engine, get_db
from app.core.security import create_token, hash_password
from app.main import app as fastapi_app
from app.models.base import Base
from app.models.user import User
from app.services import sales_service
from app.services.email_service import EmailService, get_email_service


class RecordingEmailService(EmailService):
    """Registra los correos en memoria en lugar de enviarlos."""

    def __init__(self, result: bool = True):
        super().__init__()
        self.result = result
        self.sent = []

    def send(self, to, subject, html, text, brand="boxisleep"):
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text, "brand": brand})
        return self.result


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def admin_user(db):
    user = User(email="admin@boxisleep.com", hashed_password=hash_password("secret123"), role="admin")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def staff_user(db):
    user = User(email="staff@boxisleep.com", hashed_password=hash_password("secret123"), role="staff")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_token(str(user.id), 60, token_type='access')}"}


@pytest.fixture
def emails():
    return RecordingEmailService()


@pytest.fixture
def client(db, emails):
    def override_get_db():
        yield db

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_email_service] = lambda: emails
    try:
        yield TestClient(fastapi_app)
    finally:
        fastapi_app.dependency_overrides.clear()


@pytest.fixture
def headers(admin_user):
    return auth_headers(admin_user)


@pytest.fixture
def make_order(db):
    """Crea una orden con una línea por total indicado y hace commit."""

    def _make(orden="1001", totals=(1000,), canal="shopify", **fields):
        records = [
            {
                "orden": orden,
                "canal": canal,
                "nombre": fields.get("nombre", "María Pérez"),
                "telefono": fields.get("telefono", "04141234567"),
                "email": fields.get("email"),
                "product": f"Colchón {i + 1}",
                "total_usd": total,
                "fecha": fields.get("fecha", date(2026, 3, 1)),
                **{k: v for k, v in fields.items() if k not in {"nombre", "telefono", "email", "fecha"}},
            }
            for i, total in enumerate(totals)
        ]
        normalized, errors = sales_service.validate_records(records)
        assert not errors, errors
        sales = sales_service.insert_records(db, normalized)
        db.commit()
        return sales

    return _make


@pytest.fixture
def email_service_cls():
    return RecordingEmailService


@pytest.fixture
def staff_headers(staff_user):
    return auth_headers(staff_user)
