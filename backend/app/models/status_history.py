from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from datetime import datetime

from app.models.base import Base


class StatusHistory(Base):
    __tablename__ = "status_history"

    id = Column(Integer, primary_key=True, index=True)

    # Tipo de entidad (sale, egreso, prospecto, payment)
    entity_type = Column(String(20), nullable=False, index=True)
    entity_id = Column(Integer, nullable=False, index=True)

    old_status = Column(String(50), nullable=True)  # null para creación
    new_status = Column(String(50), nullable=False)

    # Null cuando el cambio lo hace el sistema (auto-despacho, jobs)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    user_email = Column(String(255), nullable=False, default="system")

    notes = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
