#!/usr/bin/env python3
"""
Crea (o restablece) el usuario administrador inicial.
Uso: docker-compose exec backend python create_admin.py
Credenciales desde ADMIN_EMAIL / ADMIN_PASSWORD.
"""
import os

from app.core.database import SessionLocal, init_db
from app.core.roles import Role
from app.core.security import hash_password
from app.models.user import User


def create_admin():
    email = os.getenv("ADMIN_EMAIL", "admin@boxisleep.com")
    password = os.getenv("ADMIN_PASSWORD")
    if not password:
        raise SystemExit("ADMIN_PASSWORD es obligatorio")

    init_db()
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email).first()
        if user:
            user.role = Role.admin.value
            user.activo = True
            user.hashed_password = hash_password(password)
            action = "updated"
        else:
            user = User(email=email, hashed_password=hash_password(password), role=Role.admin.value)
            db.add(user)
            action = "created"
        db.commit()
        print(f"✓ Admin user '{email}' {action}")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == '__main__':
    create_admin()
