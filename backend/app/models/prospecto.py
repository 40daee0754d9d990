from datetime import datetime
from sqlalchemy import JSON, CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from app.core.enums import EstadoProspecto, check_in
from app.models.base import Base


class Prospecto(Base):
    __tablename__ = "prospectos"
    __table_args__ = (
        CheckConstraint(check_in("estado_prospecto", EstadoProspecto), name="ck_prospectos_estado"),
    )

    id = Column(Integer, primary_key=True, index=True)
    prospecto = Column(String(20), nullable=False, unique=True, index=True)  # P-0001

    nombre = Column(String(255), nullable=False)
    telefono = Column(String(50), nullable=False)
    cedula = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    canal = Column(String(50), nullable=True)
    estado_prospecto = Column(String(20), nullable=False, default=EstadoProspecto.activo.value, index=True)
    asesor_id = Column(Integer, ForeignKey("asesores.id", ondelete="SET NULL"), nullable=True, index=True)
    fecha_entrega = Column(Date, nullable=True)
    total_usd = Column(Numeric(12, 2), nullable=True)
    # [{"producto": ..., "sku": ..., "cantidad": 1, "total_usd": 100.0}]
    products = Column(JSON, nullable=True)
    notas = Column(Text, nullable=True)

    direccion_facturacion_pais = Column(String(100), nullable=True)
    direccion_facturacion_estado = Column(String(100), nullable=True)
    direccion_facturacion_ciudad = Column(String(100), nullable=True)
    direccion_facturacion_direccion = Column(Text, nullable=True)
    direccion_facturacion_urbanizacion = Column(String(255), nullable=True)
    direccion_facturacion_referencia = Column(Text, nullable=True)

    fecha_seguimiento1 = Column(Date, nullable=True)
    respuesta_seguimiento1 = Column(Text, nullable=True)
    fecha_seguimiento2 = Column(Date, nullable=True)
    respuesta_seguimiento2 = Column(Text, nullable=True)
    fecha_seguimiento3 = Column(Date, nullable=True)
    respuesta_seguimiento3 = Column(Text, nullable=True)

    fecha_creacion = Column(Date, nullable=False)
    # Orden generada al convertir
    orden_convertida = Column(String(100), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    asesor = relationship("Asesor")
