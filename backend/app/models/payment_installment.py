from datetime import datetime
from sqlalchemy import (
    CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.core.enums import EstadoVerificacion, check_in
from app.models.base import Base


class PaymentInstallment(Base):
    __tablename__ = "payment_installments"
    __table_args__ = (
        UniqueConstraint("sale_id", "installment_number", name="uq_installments_sale_number"),
        CheckConstraint(check_in("estado_verificacion", EstadoVerificacion), name="ck_installments_verificacion"),
        CheckConstraint("pago_cuota_usd > 0", name="ck_installments_monto_positivo"),
    )

    id = Column(Integer, primary_key=True, index=True)
    sale_id = Column(Integer, ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    # Copia de la orden para consultas por orden
    orden = Column(String(100), nullable=False, index=True)
    installment_number = Column(Integer, nullable=False)

    fecha = Column(Date, nullable=True)
    pago_cuota_usd = Column(Numeric(12, 2), nullable=False)
    monto_cuota_usd = Column(Numeric(12, 2), nullable=True)
    monto_cuota_bs = Column(Numeric(14, 2), nullable=True)
    banco_receptor_cuota = Column(String(100), nullable=True)
    referencia = Column(String(100), nullable=True)

    estado_verificacion = Column(String(20), nullable=False, default=EstadoVerificacion.por_verificar.value)
    notas_verificacion = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    sale = relationship("Sale", back_populates="installments")
