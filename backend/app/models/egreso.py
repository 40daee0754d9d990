from datetime import datetime
from sqlalchemy import (
    Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.core.enums import EstadoEgreso, EstadoVerificacion, Frecuencia, Moneda, check_in
from app.models.base import Base


class Egreso(Base):
    __tablename__ = "egresos"
    __table_args__ = (
        UniqueConstraint("serie_recurrencia_id", "numero_en_serie", name="uq_egresos_serie_numero"),
        CheckConstraint(check_in("estado", EstadoEgreso), name="ck_egresos_estado"),
        CheckConstraint(check_in("moneda", Moneda), name="ck_egresos_moneda"),
        CheckConstraint(check_in("estado_verificacion", EstadoVerificacion), name="ck_egresos_verificacion"),
        CheckConstraint(
            "frecuencia_recurrencia IS NULL OR " + check_in("frecuencia_recurrencia", Frecuencia),
            name="ck_egresos_frecuencia",
        ),
        CheckConstraint("monto > 0", name="ck_egresos_monto_positivo"),
    )

    id = Column(Integer, primary_key=True, index=True)
    numero_egreso = Column(Integer, nullable=False, unique=True, index=True)

    fecha = Column(Date, nullable=False)  # fecha de registro
    descripcion = Column(Text, nullable=False)
    beneficiario = Column(String(255), nullable=True)
    monto = Column(Numeric(12, 2), nullable=False)
    moneda = Column(String(3), nullable=False, default="USD")
    tipo = Column(String(100), nullable=True)
    metodo_pago = Column(String(100), nullable=True)
    banco_id = Column(Integer, ForeignKey("bancos.id", ondelete="SET NULL"), nullable=True)
    fecha_compromiso = Column(Date, nullable=True, index=True)
    requiere_aprobacion = Column(Boolean, nullable=False, default=False)
    notas = Column(Text, nullable=True)

    estado = Column(String(20), nullable=False, default=EstadoEgreso.registrado.value, index=True)

    # Aprobación
    fecha_aprobacion = Column(Date, nullable=True)
    notas_aprobacion = Column(Text, nullable=True)

    # Pago
    fecha_pago = Column(Date, nullable=True)
    monto_pagado = Column(Numeric(12, 2), nullable=True)
    referencia_pago = Column(String(100), nullable=True)

    # Verificación
    estado_verificacion = Column(String(20), nullable=False, default=EstadoVerificacion.por_verificar.value)
    fecha_verificacion = Column(Date, nullable=True)
    notas_verificacion = Column(Text, nullable=True)

    # Recurrencia
    es_recurrente = Column(Boolean, nullable=False, default=False)
    frecuencia_recurrencia = Column(String(20), nullable=True)
    serie_recurrencia_id = Column(String(36), nullable=True, index=True)
    numero_en_serie = Column(Integer, nullable=True)
    numero_repeticiones = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    banco = relationship("Banco")
