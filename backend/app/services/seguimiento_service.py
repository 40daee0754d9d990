"""
Seguimientos de prospectos y órdenes pendientes: configuración, edición de
fechas y resumen diario por asesor.
"""
import logging
from collections import defaultdict
from datetime import date
from html import escape
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.clock import today as local_today
from app.core.enums import EstadoEntrega, EstadoProspecto
from app.core.errors import DomainError
from app.models.asesor import Asesor
from app.models.prospecto import Prospecto
from app.models.sale import Sale
from app.models.seguimiento_config import SeguimientoConfig
from app.services.email_service import EmailService
from app.services.follow_up import PHASES, FollowUpEditor, cascade_dates, due_phase, phase_status

logger = logging.getLogger(__name__)

TIPOS = ("prospectos", "ordenes")
DIGEST_SUBJECT = "Recordatorio de Seguimientos - BoxiSleep CRM"
MAX_ASESOR_EMAILS = 5


def get_config(db: Session, tipo: str) -> SeguimientoConfig:
    if tipo not in TIPOS:
        raise DomainError(f"Tipo de seguimiento inválido: {tipo}")
    config = db.query(SeguimientoConfig).filter(SeguimientoConfig.tipo == tipo).first()
    if not config:
        config = SeguimientoConfig(tipo=tipo, dias_fase_1=2, dias_fase_2=4, dias_fase_3=7, asesor_emails=[])
        db.add(config)
        db.flush()
    return config


def update_config(db: Session, tipo: str, data: Dict[str, Any]) -> SeguimientoConfig:
    config = get_config(db, tipo)
    for field in ("dias_fase_1", "dias_fase_2", "dias_fase_3"):
        if field in data and data[field] is not None:
            if int(data[field]) < 0:
                raise DomainError(f"{field} no puede ser negativo")
            setattr(config, field, int(data[field]))
    if "email_recordatorio" in data:
        config.email_recordatorio = data["email_recordatorio"] or None
    if "asesor_emails" in data and data["asesor_emails"] is not None:
        emails = [e for e in data["asesor_emails"] if e.get("email")]
        if len(emails) > MAX_ASESOR_EMAILS:
            raise DomainError(f"Máximo {MAX_ASESOR_EMAILS} correos de asesores")
        config.asesor_emails = [{"asesor_id": int(e["asesor_id"]), "email": e["email"]} for e in emails]
    db.flush()
    return config


def offsets(config: SeguimientoConfig) -> List[int]:
    return [config.dias_fase_1, config.dias_fase_2, config.dias_fase_3]


def _saved(record) -> List[Optional[date]]:
    return [getattr(record, f"fecha_seguimiento{p}") for p in PHASES]


def _respuestas(record) -> List[Optional[str]]:
    return [getattr(record, f"respuesta_seguimiento{p}") for p in PHASES]


def effective_dates(record, base: date, config: SeguimientoConfig) -> List[date]:
    return cascade_dates(base, offsets(config), _saved(record))


def follow_up_view(record, base: date, config: SeguimientoConfig, today: Optional[date] = None) -> Dict[str, Any]:
    today = today or local_today()
    dates = effective_dates(record, base, config)
    saved = _saved(record)
    respuestas = _respuestas(record)
    return {
        "fases": [
            {
                "fase": p,
                "fecha": dates[p - 1],
                "fijada": saved[p - 1] is not None,
                "respuesta": respuestas[p - 1],
            }
            for p in PHASES
        ],
        "actual": phase_status(dates, respuestas, today),
    }


def apply_follow_up_update(records: List, base: date, config: SeguimientoConfig, data: Dict[str, Any]) -> List[date]:
    """
    Aplica las fechas/respuestas enviadas. Solo se guardan las fechas indicadas
    (quedan fijadas); las demás se siguen derivando de la cascada al leer.
    """
    first = records[0]
    editor = FollowUpEditor(base, offsets(config), _saved(first))
    for p in PHASES:
        key = f"fecha_seguimiento{p}"
        if data.get(key) is not None:
            editor.edit(p, data[key])
    for record in records:
        for p in PHASES:
            fecha_key, respuesta_key = f"fecha_seguimiento{p}", f"respuesta_seguimiento{p}"
            if data.get(fecha_key) is not None:
                setattr(record, fecha_key, data[fecha_key])
            if respuesta_key in data:
                setattr(record, respuesta_key, data[respuesta_key])
    return editor.dates


def _prospect_reminders(db: Session, config: SeguimientoConfig, today: date) -> List[Dict[str, Any]]:
    reminders = []
    prospectos = db.query(Prospecto).filter(Prospecto.estado_prospecto == EstadoProspecto.activo.value).all()
    for p in prospectos:
        dates = effective_dates(p, p.fecha_creacion, config)
        respuestas = _respuestas(p)
        fase = due_phase(dates, respuestas, today)
        if fase is None:
            continue
        reminders.append({
            "tipo": "prospecto",
            "referencia": p.prospecto,
            "nombre": p.nombre,
            "telefono": p.telefono,
            "fase": fase,
            "respuesta_anterior": respuestas[fase - 2] if fase > 1 else None,
            "asesor_id": p.asesor_id,
        })
    return reminders


def _order_reminders(db: Session, config: SeguimientoConfig, today: date) -> List[Dict[str, Any]]:
    reminders = []
    seen = set()
    lines = (
        db.query(Sale)
        .filter(Sale.estado_entrega == EstadoEntrega.pendiente.value)
        .order_by(Sale.id.asc())
        .all()
    )
    for s in lines:
        if s.orden in seen:
            continue
        seen.add(s.orden)
        dates = effective_dates(s, s.fecha, config)
        respuestas = _respuestas(s)
        fase = due_phase(dates, respuestas, today)
        if fase is None:
            continue
        reminders.append({
            "tipo": "orden",
            "referencia": s.orden,
            "nombre": s.nombre,
            "telefono": s.telefono,
            "fase": fase,
            "respuesta_anterior": respuestas[fase - 2] if fase > 1 else None,
            "asesor_id": s.asesor_id,
        })
    return reminders


def due_reminders(db: Session, tipo: str, today: Optional[date] = None) -> List[Dict[str, Any]]:
    today = today or local_today()
    config = get_config(db, tipo)
    if tipo == "prospectos":
        return _prospect_reminders(db, config, today)
    return _order_reminders(db, config, today)


def resolve_recipient(config: SeguimientoConfig, asesor_id: Optional[int]) -> Optional[str]:
    """Correo del asesor; si no hay, el correo general; si tampoco, None."""
    if asesor_id is not None:
        for entry in config.asesor_emails or []:
            if int(entry.get("asesor_id", -1)) == asesor_id and entry.get("email"):
                return entry["email"]
    return config.email_recordatorio or None


def _render_digest(asesor_nombre: str, reminders: List[Dict[str, Any]]):
    lines_text = []
    rows_html = []
    for r in reminders:
        anterior = r["respuesta_anterior"] or "-"
        lines_text.append(
            f"- [{r['tipo']}] {r['referencia']} {r['nombre']} ({r['telefono'] or 's/t'}) "
            f"fase {r['fase']}. Respuesta anterior: {anterior}"
        )
        rows_html.append(
            f"<tr><td>{escape(r['tipo'])}</td><td>{escape(str(r['referencia']))}</td>"
            f"<td>{escape(r['nombre'])}</td><td>{escape(r['telefono'] or '')}</td>"
            f"<td>{r['fase']}</td><td>{escape(anterior)}</td></tr>"
        )
    text = (
        f"Hola {asesor_nombre},\n\nTienes {len(reminders)} seguimiento(s) para hoy:\n\n"
        + "\n".join(lines_text)
    )
    html = (
        f"<p>Hola {escape(asesor_nombre)},</p><p>Tienes {len(reminders)} seguimiento(s) para hoy:</p>"
        "<table><tr><th>Tipo</th><th>Ref</th><th>Nombre</th><th>Teléfono</th><th>Fase</th>"
        "<th>Respuesta anterior</th></tr>" + "".join(rows_html) + "</table>"
    )
    return html, text


def send_digest(db: Session, tipo: str, email_service: EmailService, today: Optional[date] = None) -> Dict[str, int]:
    """Un correo por asesor con los seguimientos de hoy. Sin destinatario: se registra error y se descarta."""
    today = today or local_today()
    config = get_config(db, tipo)
    reminders = due_reminders(db, tipo, today)

    groups: Dict[Optional[int], List[Dict[str, Any]]] = defaultdict(list)
    for r in reminders:
        groups[r["asesor_id"]].append(r)

    asesores = {a.id: a.nombre for a in db.query(Asesor).all()}
    sent = dropped = 0
    for asesor_id, items in groups.items():
        recipient = resolve_recipient(config, asesor_id)
        asesor_nombre = asesores.get(asesor_id, "equipo") if asesor_id is not None else "equipo"
        if not recipient:
            logger.error(
                "Seguimientos %s: sin correo para asesor %s ni correo general; %s recordatorio(s) descartados",
                tipo, asesor_id if asesor_id is not None else "sin-asesor", len(items),
            )
            dropped += len(items)
            continue
        html, text = _render_digest(asesor_nombre, items)
        if email_service.send(recipient, DIGEST_SUBJECT, html, text):
            sent += 1
        else:
            dropped += len(items)

    logger.info("Seguimientos %s %s: %s recordatorio(s), %s correo(s), %s descartado(s)",
                tipo, today, len(reminders), sent, dropped)
    return {"reminders": len(reminders), "emails_sent": sent, "dropped": dropped}


def run_daily_digest(db: Session, email_service: EmailService, today: Optional[date] = None) -> Dict[str, Dict[str, int]]:
    return {tipo: send_digest(db, tipo, email_service, today) for tipo in TIPOS}
