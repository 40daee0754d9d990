from datetime import datetime
from sqlalchemy import (
    Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text,
)
from sqlalchemy.orm import relationship

from app.core.enums import EstadoEntrega, EstadoVerificacion, TipoVenta, check_in
from app.models.base import Base


class Sale(Base):
    """
    Una fila por línea de producto. Las líneas de una misma orden comparten `orden`.
    El total de la orden no se guarda: es la suma de total_usd de sus líneas.
    Los campos de pago inicial y flete son de la orden y se escriben en todas sus líneas.
    """
    __tablename__ = "sales"
    __table_args__ = (
        CheckConstraint(check_in("estado_entrega", EstadoEntrega), name="ck_sales_estado_entrega"),
        CheckConstraint(check_in("tipo", TipoVenta), name="ck_sales_tipo"),
        CheckConstraint(
            check_in("estado_verificacion_inicial", EstadoVerificacion),
            name="ck_sales_verificacion_inicial",
        ),
        CheckConstraint(
            check_in("estado_verificacion_flete", EstadoVerificacion),
            name="ck_sales_verificacion_flete",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    orden = Column(String(100), nullable=False, index=True)
    canal = Column(String(50), nullable=False, index=True)
    tipo = Column(String(20), nullable=False, default=TipoVenta.inmediato.value)

    # Cliente
    nombre = Column(String(255), nullable=False)
    cedula = Column(String(50), nullable=True)
    telefono = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)

    # Producto
    product = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=True)
    cantidad = Column(Integer, nullable=False, default=1)
    total_usd = Column(Numeric(12, 2), nullable=False, default=0)

    fecha = Column(Date, nullable=False, index=True)
    fecha_entrega = Column(Date, nullable=True)  # obligatoria para Reserva
    asesor_id = Column(Integer, ForeignKey("asesores.id", ondelete="SET NULL"), nullable=True, index=True)
    notas = Column(Text, nullable=True)

    estado_entrega = Column(String(30), nullable=False, default=EstadoEntrega.pendiente.value, index=True)

    # Dirección de facturación
    direccion_facturacion_pais = Column(String(100), nullable=True)
    direccion_facturacion_estado = Column(String(100), nullable=True)
    direccion_facturacion_ciudad = Column(String(100), nullable=True)
    direccion_facturacion_direccion = Column(Text, nullable=True)
    direccion_facturacion_urbanizacion = Column(String(255), nullable=True)
    direccion_facturacion_referencia = Column(Text, nullable=True)

    direccion_despacho_igual_facturacion = Column(Boolean, nullable=False, default=True)

    # Dirección de despacho
    direccion_despacho_pais = Column(String(100), nullable=True)
    direccion_despacho_estado = Column(String(100), nullable=True)
    direccion_despacho_ciudad = Column(String(100), nullable=True)
    direccion_despacho_direccion = Column(Text, nullable=True)
    direccion_despacho_urbanizacion = Column(String(255), nullable=True)
    direccion_despacho_referencia = Column(Text, nullable=True)

    # Pago inicial / total (uno por orden)
    pago_inicial_usd = Column(Numeric(12, 2), nullable=True)
    fecha_pago_inicial = Column(Date, nullable=True)
    banco_receptor_inicial = Column(String(100), nullable=True)
    referencia_inicial = Column(String(100), nullable=True)
    monto_inicial_bs = Column(Numeric(14, 2), nullable=True)
    estado_verificacion_inicial = Column(String(20), nullable=False, default=EstadoVerificacion.por_verificar.value)
    notas_verificacion_inicial = Column(Text, nullable=True)

    # Flete (uno por orden)
    flete_a_pagar = Column(Numeric(12, 2), nullable=True)
    pago_flete_usd = Column(Numeric(12, 2), nullable=True)
    fecha_flete = Column(Date, nullable=True)
    banco_receptor_flete = Column(String(100), nullable=True)
    referencia_flete = Column(String(100), nullable=True)
    monto_flete_bs = Column(Numeric(14, 2), nullable=True)
    flete_gratis = Column(Boolean, nullable=False, default=False)
    status_flete = Column(String(20), nullable=True)
    estado_verificacion_flete = Column(String(20), nullable=False, default=EstadoVerificacion.por_verificar.value)
    notas_verificacion_flete = Column(Text, nullable=True)

    # Logística
    transportista = Column(String(100), nullable=True)
    nro_guia = Column(String(100), nullable=True)
    fecha_despacho = Column(Date, nullable=True)
    fecha_cliente = Column(Date, nullable=True)  # entregado al cliente
    fecha_devolucion = Column(Date, nullable=True)
    tipo_devolucion = Column(String(50), nullable=True)
    datos_devolucion = Column(Text, nullable=True)

    # Seguimiento de órdenes pendientes
    fecha_seguimiento1 = Column(Date, nullable=True)
    respuesta_seguimiento1 = Column(Text, nullable=True)
    fecha_seguimiento2 = Column(Date, nullable=True)
    respuesta_seguimiento2 = Column(Text, nullable=True)
    fecha_seguimiento3 = Column(Date, nullable=True)
    respuesta_seguimiento3 = Column(Text, nullable=True)

    import_batch_id = Column(String(36), nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    asesor = relationship("Asesor")
    installments = relationship(
        "PaymentInstallment",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="PaymentInstallment.installment_number",
    )
