from sqlalchemy import CheckConstraint, Column, Integer, String

from app.models.base import Base


class Banco(Base):
    __tablename__ = "bancos"
    __table_args__ = (
        CheckConstraint("tipo IN ('Receptor', 'Emisor')", name="ck_bancos_tipo"),
    )

    id = Column(Integer, primary_key=True, index=True)
    banco = Column(String(100), nullable=False)
    numero_cuenta = Column(String(50), nullable=True)
    tipo = Column(String(20), nullable=False, default="Receptor")
