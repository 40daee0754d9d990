from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from app.models.base import Base


class CasheaAutomationConfig(Base):
    __tablename__ = "cashea_automation_config"

    id = Column(Integer, primary_key=True, index=True)
    enabled = Column(Boolean, nullable=False, default=False)
    frequency = Column(String(20), nullable=False, default="2 hours")
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class CasheaAutomaticDownload(Base):
    __tablename__ = "cashea_automatic_downloads"

    id = Column(Integer, primary_key=True, index=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    records_count = Column(Integer, nullable=False, default=0)
    duplicates_ignored = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False)  # "success" | "error"
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
