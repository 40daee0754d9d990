from datetime import datetime
from sqlalchemy import JSON, Column, DateTime, Integer, String

from app.models.base import Base


class SaleSnapshot(Base):
    """
    Copia de las filas borradas por una importación en modo "replace".
    Solo se conserva el último lote (deshacer de un nivel).
    """
    __tablename__ = "sale_snapshots"

    id = Column(Integer, primary_key=True, index=True)
    batch_id = Column(String(36), nullable=False, index=True)
    # Fila de sales serializada, con sus cuotas en "installments"
    data = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
