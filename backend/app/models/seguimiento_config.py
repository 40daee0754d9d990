from sqlalchemy import JSON, CheckConstraint, Column, Integer, String

from app.models.base import Base


class SeguimientoConfig(Base):
    """Días entre fases de seguimiento y destinatarios del resumen diario."""
    __tablename__ = "seguimiento_config"
    __table_args__ = (
        CheckConstraint("tipo IN ('prospectos', 'ordenes')", name="ck_seguimiento_config_tipo"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tipo = Column(String(20), nullable=False, unique=True)
    dias_fase_1 = Column(Integer, nullable=False, default=2)
    dias_fase_2 = Column(Integer, nullable=False, default=4)
    dias_fase_3 = Column(Integer, nullable=False, default=7)
    # Correo general de respaldo
    email_recordatorio = Column(String(255), nullable=True)
    # [{"asesor_id": 1, "email": "..."}]
    asesor_emails = Column(JSON, nullable=True)
