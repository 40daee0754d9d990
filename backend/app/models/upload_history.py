from datetime import datetime
from sqlalchemy import Column, DateTime, Integer, String, Text

from app.models.base import Base


class UploadHistory(Base):
    __tablename__ = "upload_history"

    id = Column(Integer, primary_key=True, index=True)
    filename = Column(String(255), nullable=False)
    canal = Column(String(50), nullable=False)
    records_count = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False)  # "success" | "error" | "undone"
    error_message = Column(Text, nullable=True)
    # Solo importaciones de archivo: "add" | "replace" y el lote insertado
    mode = Column(String(20), nullable=True)
    batch_id = Column(String(36), nullable=True, index=True)
    uploaded_at = Column(DateTime, default=datetime.utcnow, nullable=False)
