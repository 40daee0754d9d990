from sqlalchemy import Boolean, Column, Integer, String

from app.models.base import Base


class Asesor(Base):
    __tablename__ = "asesores"

    id = Column(Integer, primary_key=True, index=True)
    nombre = Column(String(255), nullable=False, unique=True)
    activo = Column(Boolean, nullable=False, default=True)
