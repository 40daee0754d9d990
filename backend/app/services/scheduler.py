"""
Dueño explícito de los jobs programados. Lo crea create_app() y su ciclo de
vida (start/stop/restart) lo maneja el lifespan de la aplicación.

Jobs:
- cashea_download: intervalo según CasheaAutomationConfig (solo si está habilitado)
- seguimiento_digest: diario a settings.seguimiento_hour
- egresos_recurrentes: diario a settings.recurrence_hour

Cada ejecución usa su propia sesión, captura sus errores y deja una fila en job_runs.
Sin reintentos: la siguiente ejecución programada es el reintento.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import SessionLocal
from app.models.job_run import JobRun
from app.services import cashea_service, egresos_service, seguimiento_service
from app.services.email_service import EmailService, email_service as default_email_service

logger = logging.getLogger(__name__)

CASHEA_JOB_ID = "cashea_download"
SEGUIMIENTO_JOB_ID = "seguimiento_digest"
RECURRENCE_JOB_ID = "egresos_recurrentes"


class JobScheduler:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        email_service: Optional[EmailService] = None,
        cashea_client_factory: Callable[[], cashea_service.CasheaClient] = cashea_service.CasheaClient,
        timezone: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.email_service = email_service or default_email_service
        self.cashea_client_factory = cashea_client_factory
        self.timezone = timezone or settings.timezone
        self._scheduler: Optional[BackgroundScheduler] = None

    @property
    def running(self) -> bool:
        return bool(self._scheduler and self._scheduler.running)

    def start(self) -> None:
        if self.running:
            return
        self._scheduler = BackgroundScheduler(timezone=self.timezone)
        self._scheduler.add_job(
            self.run_seguimiento,
            trigger=CronTrigger(hour=settings.seguimiento_hour, minute=0, timezone=self.timezone),
            id=SEGUIMIENTO_JOB_ID,
            name="Resumen diario de seguimientos",
            replace_existing=True,
            max_instances=1,
        )
        self._scheduler.add_job(
            self.run_recurrence,
            trigger=CronTrigger(hour=settings.recurrence_hour, minute=0, timezone=self.timezone),
            id=RECURRENCE_JOB_ID,
            name="Egresos recurrentes",
            replace_existing=True,
            max_instances=1,
        )
        self._scheduler.start()
        self.reschedule_cashea()
        logger.info("Scheduler iniciado con %s job(s)", len(self._scheduler.get_jobs()))

    def stop(self) -> None:
        if self.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler detenido")
        self._scheduler = None

    def restart(self) -> None:
        self.stop()
        self.start()

    def reschedule_cashea(self) -> None:
        """Aplica la configuración de Cashea guardada: agrega, mueve o quita el job."""
        if not self.running:
            return
        db = self.session_factory()
        try:
            config = cashea_service.get_automation_config(db)
            db.commit()
            enabled, frequency = config.enabled, config.frequency
        finally:
            db.close()

        if self._scheduler.get_job(CASHEA_JOB_ID):
            self._scheduler.remove_job(CASHEA_JOB_ID)
        if not enabled:
            logger.info("Descarga automática de Cashea deshabilitada")
            return
        minutes = cashea_service.FREQUENCY_MINUTES.get(frequency, cashea_service.FREQUENCY_MINUTES["2 hours"])
        self._scheduler.add_job(
            self.run_cashea,
            trigger=IntervalTrigger(minutes=minutes, timezone=self.timezone),
            id=CASHEA_JOB_ID,
            name="Descarga automática Cashea",
            replace_existing=True,
            max_instances=1,
        )
        logger.info("Descarga automática de Cashea cada %s", frequency)

    def _run(self, job_name: str, work: Callable[[Session], str]) -> JobRun:
        started = datetime.utcnow()
        db = self.session_factory()
        try:
            try:
                message = work(db)
                status = "success"
            except Exception as exc:
                db.rollback()
                logger.exception("Job %s falló", job_name)
                message, status = f"{exc.__class__.__name__}: {exc}", "error"
            run = JobRun(job_name=job_name, status=status, message=message, started_at=started,
                         finished_at=datetime.utcnow())
            db.add(run)
            db.commit()
            db.refresh(run)
            return run
        finally:
            db.close()

    def run_cashea(self) -> JobRun:
        def work(db: Session) -> str:
            result = cashea_service.run_automatic_download(db, self.cashea_client_factory())
            if result.status != "success":
                raise RuntimeError(result.error_message)
            return f"{result.records_count} línea(s) nuevas, {result.duplicates_ignored} orden(es) duplicadas"
        return self._run(CASHEA_JOB_ID, work)

    def run_seguimiento(self) -> JobRun:
        def work(db: Session) -> str:
            result = seguimiento_service.run_daily_digest(db, self.email_service)
            db.commit()
            return "; ".join(
                f"{tipo}: {r['reminders']} recordatorio(s), {r['emails_sent']} correo(s), {r['dropped']} descartado(s)"
                for tipo, r in result.items()
            )
        return self._run(SEGUIMIENTO_JOB_ID, work)

    def run_recurrence(self) -> JobRun:
        def work(db: Session) -> str:
            created = egresos_service.process_recurring_series(db)
            return f"{len(created)} ocurrencia(s) creada(s)"
        return self._run(RECURRENCE_JOB_ID, work)
