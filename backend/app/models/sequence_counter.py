from sqlalchemy import Column, Integer, String

from app.models.base import Base


class SequenceCounter(Base):
	__tablename__ = "sequence_counters"

	id = Column(Integer, primary_key=True, index=True)
	# tipo: 'ORDEN' | 'EGRESO' | 'PROSPECTO'
	tipo = Column(String(20), nullable=False, unique=True, index=True)
	next_seq = Column(Integer, nullable=False, default=1)
