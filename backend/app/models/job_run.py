from datetime import datetime
from sqlalchemy import Column, DateTime, Integer, String, Text

from app.models.base import Base


class JobRun(Base):
    """Fila de estado persistida por cada ejecución de un job programado."""
    __tablename__ = "job_runs"

    id = Column(Integer, primary_key=True, index=True)
    job_name = Column(String(50), nullable=False, index=True)
    status = Column(String(20), nullable=False)  # "success" | "error"
    message = Column(Text, nullable=True)
    started_at = Column(DateTime, nullable=False)
    finished_at = Column(DateTime, default=datetime.utcnow, nullable=False)
