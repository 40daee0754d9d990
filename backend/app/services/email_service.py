"""
Envío de correos. Dos vías según la marca:
- BoxiSleep: API transaccional HTTP (httpx)
- Mompox: SMTP

Best-effort: un fallo se registra en el log y retorna False; nunca revierte
la operación que disparó el correo.
"""
import logging
import smtplib
from email.message import EmailMessage
from html import escape
from typing import Callable, List, Optional

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)

BOXISLEEP = "boxisleep"
MOMPOX = "mompox"


def brand_for_canal(canal: Optional[str]) -> str:
    """ShopMom o canales con 'MP' en el nombre son Mompox; el resto BoxiSleep."""
    if canal and (canal.strip().lower() == "shopmom" or "MP" in canal):
        return MOMPOX
    return BOXISLEEP


class EmailService:
    def __init__(
        self,
        transport: Optional[httpx.BaseTransport] = None,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ):
        self._transport = transport
        self._smtp_factory = smtp_factory

    def send(self, to: str, subject: str, html: str, text: str, brand: str = BOXISLEEP) -> bool:
        if not settings.email_enabled:
            logger.info("Email deshabilitado, no se envía '%s' a %s", subject, to)
            return False
        if not to:
            logger.warning("Email '%s' sin destinatario", subject)
            return False
        try:
            if brand == MOMPOX:
                self._send_smtp(to, subject, html, text)
            else:
                self._send_api(to, subject, html, text)
        except (httpx.HTTPError, smtplib.SMTPException, OSError) as exc:
            logger.error("Error enviando email '%s' a %s (%s): %s", subject, to, brand, exc)
            return False
        logger.info("Email '%s' enviado a %s (%s)", subject, to, brand)
        return True

    def _send_api(self, to: str, subject: str, html: str, text: str) -> None:
        if not settings.email_api_key:
            raise httpx.HTTPError("email_api_key no configurada")
        with httpx.Client(transport=self._transport, timeout=30.0) as client:
            response = client.post(
                settings.email_api_url,
                headers={"Authorization": f"Bearer {settings.email_api_key}"},
                json={
                    "from": settings.email_from_boxisleep,
                    "to": [to],
                    "subject": subject,
                    "html": html,
                    "text": text,
                },
            )
            response.raise_for_status()

    def _send_smtp(self, to: str, subject: str, html: str, text: str) -> None:
        if not settings.smtp_host:
            raise smtplib.SMTPException("smtp_host no configurado")
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = settings.email_from_mompox
        message["To"] = to
        message.set_content(text)
        message.add_alternative(html, subtype="html")

        with self._smtp_factory(settings.smtp_host, settings.smtp_port) as smtp:
            smtp.starttls()
            if settings.smtp_user:
                smtp.login(settings.smtp_user, settings.smtp_password or "")
            smtp.send_message(message)

    def send_order_confirmation(self, orden: str, nombre: str, email: Optional[str], canal: str, lines: List[dict]) -> bool:
        brand = brand_for_canal(canal)
        marca = "Mompox" if brand == MOMPOX else "BoxiSleep"
        subject = f"Confirmación de tu orden #{orden} - {marca}"
        items_text = "\n".join(f"- {l['product']} x{l['cantidad']}: ${l['total_usd']:.2f}" for l in lines)
        items_html = "".join(
            f"<li>{escape(l['product'])} x{l['cantidad']}: ${l['total_usd']:.2f}</li>" for l in lines
        )
        total = sum(l["total_usd"] for l in lines)
        text = f"Hola {nombre},\n\nRecibimos tu orden #{orden}.\n\n{items_text}\n\nTotal: ${total:.2f}\n\n{marca}"
        html = (
            f"<p>Hola {escape(nombre)},</p><p>Recibimos tu orden <strong>#{escape(orden)}</strong>.</p>"
            f"<ul>{items_html}</ul><p><strong>Total: ${total:.2f}</strong></p><p>{marca}</p>"
        )
        return self.send(email, subject, html, text, brand=brand)

    def send_payment_notification(self, orden: str, nombre: str, email: Optional[str], canal: str,
                                  monto: float, saldo: float) -> bool:
        brand = brand_for_canal(canal)
        marca = "Mompox" if brand == MOMPOX else "BoxiSleep"
        subject = f"Pago recibido - Orden #{orden}"
        text = (
            f"Hola {nombre},\n\nRegistramos un pago de ${monto:.2f} para tu orden #{orden}.\n"
            f"Saldo pendiente: ${saldo:.2f}\n\n{marca}"
        )
        html = (
            f"<p>Hola {escape(nombre)},</p><p>Registramos un pago de <strong>${monto:.2f}</strong> "
            f"para tu orden #{escape(orden)}.</p><p>Saldo pendiente: ${saldo:.2f}</p><p>{marca}</p>"
        )
        return self.send(email, subject, html, text, brand=brand)


email_service = EmailService()


def get_email_service() -> EmailService:
    return email_service
