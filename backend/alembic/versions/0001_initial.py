from alembic import op
import sqlalchemy as sa

from app.core.enums import (
    EstadoEgreso, EstadoEntrega, EstadoProspecto, EstadoVerificacion, Frecuencia, Moneda, TipoVenta, check_in,
)


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def _direccion(bloque: str):
    return [
        sa.Column(f"direccion_{bloque}_pais", sa.String(100), nullable=True),
        sa.Column(f"direccion_{bloque}_estado", sa.String(100), nullable=True),
        sa.Column(f"direccion_{bloque}_ciudad", sa.String(100), nullable=True),
        sa.Column(f"direccion_{bloque}_direccion", sa.Text(), nullable=True),
        sa.Column(f"direccion_{bloque}_urbanizacion", sa.String(255), nullable=True),
        sa.Column(f"direccion_{bloque}_referencia", sa.Text(), nullable=True),
    ]


def _seguimiento():
    columns = []
    for fase in (1, 2, 3):
        columns.append(sa.Column(f"fecha_seguimiento{fase}", sa.Date(), nullable=True))
        columns.append(sa.Column(f"respuesta_seguimiento{fase}", sa.Text(), nullable=True))
    return columns


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(50), nullable=False, server_default="staff"),
        sa.Column("activo", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "sequence_counters",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("tipo", sa.String(20), nullable=False, unique=True, index=True),
        sa.Column("next_seq", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_table(
        "asesores",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("nombre", sa.String(255), nullable=False, unique=True),
        sa.Column("activo", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "bancos",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("banco", sa.String(100), nullable=False),
        sa.Column("numero_cuenta", sa.String(50), nullable=True),
        sa.Column("tipo", sa.String(20), nullable=False, server_default="Receptor"),
        sa.CheckConstraint("tipo IN ('Receptor', 'Emisor')", name="ck_bancos_tipo"),
    )

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("orden", sa.String(100), nullable=False, index=True),
        sa.Column("canal", sa.String(50), nullable=False, index=True),
        sa.Column("tipo", sa.String(20), nullable=False, server_default="Inmediato"),
        sa.Column("nombre", sa.String(255), nullable=False),
        sa.Column("cedula", sa.String(50), nullable=True),
        sa.Column("telefono", sa.String(50), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("product", sa.String(255), nullable=False),
        sa.Column("sku", sa.String(100), nullable=True),
        sa.Column("cantidad", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("total_usd", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("fecha", sa.Date(), nullable=False, index=True),
        sa.Column("fecha_entrega", sa.Date(), nullable=True),
        sa.Column("asesor_id", sa.Integer(), nullable=True, index=True),
        sa.Column("notas", sa.Text(), nullable=True),
        sa.Column("estado_entrega", sa.String(30), nullable=False, server_default="Pendiente", index=True),
        *_direccion("facturacion"),
        sa.Column("direccion_despacho_igual_facturacion", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_direccion("despacho"),
        sa.Column("pago_inicial_usd", sa.Numeric(12, 2), nullable=True),
        sa.Column("fecha_pago_inicial", sa.Date(), nullable=True),
        sa.Column("banco_receptor_inicial", sa.String(100), nullable=True),
        sa.Column("referencia_inicial", sa.String(100), nullable=True),
        sa.Column("monto_inicial_bs", sa.Numeric(14, 2), nullable=True),
        sa.Column("estado_verificacion_inicial", sa.String(20), nullable=False, server_default="Por verificar"),
        sa.Column("notas_verificacion_inicial", sa.Text(), nullable=True),
        sa.Column("flete_a_pagar", sa.Numeric(12, 2), nullable=True),
        sa.Column("pago_flete_usd", sa.Numeric(12, 2), nullable=True),
        sa.Column("fecha_flete", sa.Date(), nullable=True),
        sa.Column("banco_receptor_flete", sa.String(100), nullable=True),
        sa.Column("referencia_flete", sa.String(100), nullable=True),
        sa.Column("monto_flete_bs", sa.Numeric(14, 2), nullable=True),
        sa.Column("flete_gratis", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status_flete", sa.String(20), nullable=True),
        sa.Column("estado_verificacion_flete", sa.String(20), nullable=False, server_default="Por verificar"),
        sa.Column("notas_verificacion_flete", sa.Text(), nullable=True),
        sa.Column("transportista", sa.String(100), nullable=True),
        sa.Column("nro_guia", sa.String(100), nullable=True),
        sa.Column("fecha_despacho", sa.Date(), nullable=True),
        sa.Column("fecha_cliente", sa.Date(), nullable=True),
        sa.Column("fecha_devolucion", sa.Date(), nullable=True),
        sa.Column("tipo_devolucion", sa.String(50), nullable=True),
        sa.Column("datos_devolucion", sa.Text(), nullable=True),
        *_seguimiento(),
        sa.Column("import_batch_id", sa.String(36), nullable=True, index=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["asesor_id"], ["asesores.id"], ondelete="SET NULL"),
        sa.CheckConstraint(check_in("estado_entrega", EstadoEntrega), name="ck_sales_estado_entrega"),
        sa.CheckConstraint(check_in("tipo", TipoVenta), name="ck_sales_tipo"),
        sa.CheckConstraint(
            check_in("estado_verificacion_inicial", EstadoVerificacion), name="ck_sales_verificacion_inicial"
        ),
        sa.CheckConstraint(
            check_in("estado_verificacion_flete", EstadoVerificacion), name="ck_sales_verificacion_flete"
        ),
    )
    op.create_table(
        "payment_installments",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("sale_id", sa.Integer(), nullable=False, index=True),
        sa.Column("orden", sa.String(100), nullable=False, index=True),
        sa.Column("installment_number", sa.Integer(), nullable=False),
        sa.Column("fecha", sa.Date(), nullable=True),
        sa.Column("pago_cuota_usd", sa.Numeric(12, 2), nullable=False),
        sa.Column("monto_cuota_usd", sa.Numeric(12, 2), nullable=True),
        sa.Column("monto_cuota_bs", sa.Numeric(14, 2), nullable=True),
        sa.Column("banco_receptor_cuota", sa.String(100), nullable=True),
        sa.Column("referencia", sa.String(100), nullable=True),
        sa.Column("estado_verificacion", sa.String(20), nullable=False, server_default="Por verificar"),
        sa.Column("notas_verificacion", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("sale_id", "installment_number", name="uq_installments_sale_number"),
        sa.CheckConstraint(check_in("estado_verificacion", EstadoVerificacion), name="ck_installments_verificacion"),
        sa.CheckConstraint("pago_cuota_usd > 0", name="ck_installments_monto_positivo"),
    )

    op.create_table(
        "egresos",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("numero_egreso", sa.Integer(), nullable=False, unique=True, index=True),
        sa.Column("fecha", sa.Date(), nullable=False),
        sa.Column("descripcion", sa.Text(), nullable=False),
        sa.Column("beneficiario", sa.String(255), nullable=True),
        sa.Column("monto", sa.Numeric(12, 2), nullable=False),
        sa.Column("moneda", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("tipo", sa.String(100), nullable=True),
        sa.Column("metodo_pago", sa.String(100), nullable=True),
        sa.Column("banco_id", sa.Integer(), nullable=True),
        sa.Column("fecha_compromiso", sa.Date(), nullable=True, index=True),
        sa.Column("requiere_aprobacion", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notas", sa.Text(), nullable=True),
        sa.Column("estado", sa.String(20), nullable=False, server_default="registrado", index=True),
        sa.Column("fecha_aprobacion", sa.Date(), nullable=True),
        sa.Column("notas_aprobacion", sa.Text(), nullable=True),
        sa.Column("fecha_pago", sa.Date(), nullable=True),
        sa.Column("monto_pagado", sa.Numeric(12, 2), nullable=True),
        sa.Column("referencia_pago", sa.String(100), nullable=True),
        sa.Column("estado_verificacion", sa.String(20), nullable=False, server_default="Por verificar"),
        sa.Column("fecha_verificacion", sa.Date(), nullable=True),
        sa.Column("notas_verificacion", sa.Text(), nullable=True),
        sa.Column("es_recurrente", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("frecuencia_recurrencia", sa.String(20), nullable=True),
        sa.Column("serie_recurrencia_id", sa.String(36), nullable=True, index=True),
        sa.Column("numero_en_serie", sa.Integer(), nullable=True),
        sa.Column("numero_repeticiones", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["banco_id"], ["bancos.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("serie_recurrencia_id", "numero_en_serie", name="uq_egresos_serie_numero"),
        sa.CheckConstraint(check_in("estado", EstadoEgreso), name="ck_egresos_estado"),
        sa.CheckConstraint(check_in("moneda", Moneda), name="ck_egresos_moneda"),
        sa.CheckConstraint(check_in("estado_verificacion", EstadoVerificacion), name="ck_egresos_verificacion"),
        sa.CheckConstraint(
            "frecuencia_recurrencia IS NULL OR " + check_in("frecuencia_recurrencia", Frecuencia),
            name="ck_egresos_frecuencia",
        ),
        sa.CheckConstraint("monto > 0", name="ck_egresos_monto_positivo"),
    )

    op.create_table(
        "prospectos",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("prospecto", sa.String(20), nullable=False, unique=True, index=True),
        sa.Column("nombre", sa.String(255), nullable=False),
        sa.Column("telefono", sa.String(50), nullable=False),
        sa.Column("cedula", sa.String(50), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("canal", sa.String(50), nullable=True),
        sa.Column("estado_prospecto", sa.String(20), nullable=False, server_default="Activo", index=True),
        sa.Column("asesor_id", sa.Integer(), nullable=True, index=True),
        sa.Column("fecha_entrega", sa.Date(), nullable=True),
        sa.Column("total_usd", sa.Numeric(12, 2), nullable=True),
        sa.Column("products", sa.JSON(), nullable=True),
        sa.Column("notas", sa.Text(), nullable=True),
        *_direccion("facturacion"),
        *_seguimiento(),
        sa.Column("fecha_creacion", sa.Date(), nullable=False),
        sa.Column("orden_convertida", sa.String(100), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["asesor_id"], ["asesores.id"], ondelete="SET NULL"),
        sa.CheckConstraint(check_in("estado_prospecto", EstadoProspecto), name="ck_prospectos_estado"),
    )
    op.create_table(
        "seguimiento_config",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("tipo", sa.String(20), nullable=False, unique=True),
        sa.Column("dias_fase_1", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("dias_fase_2", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("dias_fase_3", sa.Integer(), nullable=False, server_default="7"),
        sa.Column("email_recordatorio", sa.String(255), nullable=True),
        sa.Column("asesor_emails", sa.JSON(), nullable=True),
        sa.CheckConstraint("tipo IN ('prospectos', 'ordenes')", name="ck_seguimiento_config_tipo"),
    )

    op.create_table(
        "upload_history",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("canal", sa.String(50), nullable=False),
        sa.Column("records_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("mode", sa.String(20), nullable=True),
        sa.Column("batch_id", sa.String(36), nullable=True, index=True),
        sa.Column("uploaded_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "sale_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("batch_id", sa.String(36), nullable=False, index=True),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "cashea_automation_config",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("frequency", sa.String(20), nullable=False, server_default="2 hours"),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "cashea_automatic_downloads",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=False),
        sa.Column("records_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("duplicates_ignored", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "job_runs",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("job_name", sa.String(50), nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "status_history",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("entity_type", sa.String(20), nullable=False, index=True),
        sa.Column("entity_id", sa.Integer(), nullable=False, index=True),
        sa.Column("old_status", sa.String(50), nullable=True),
        sa.Column("new_status", sa.String(50), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("user_email", sa.String(255), nullable=False, server_default="system"),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
    )


def downgrade() -> None:
    for table in (
        "status_history", "job_runs", "cashea_automatic_downloads", "cashea_automation_config",
        "sale_snapshots", "upload_history", "seguimiento_config", "prospectos", "egresos",
        "payment_installments", "sales", "bancos", "asesores", "sequence_counters", "users",
    ):
        op.drop_table(table)
