from datetime import date

from app.core.database import SessionLocal
from app.models.cashea import CasheaAutomaticDownload
from app.models.egreso import Egreso
from app.models.job_run import JobRun
from app.models.upload_history import UploadHistory
from app.services import egresos_service
from app.services.cashea_service import CasheaClient
from app.services.scheduler import CASHEA_JOB_ID, RECURRENCE_JOB_ID, SEGUIMIENTO_JOB_ID, JobScheduler


def _scheduler(email_service_cls, **kwargs):
    return JobScheduler(session_factory=SessionLocal, email_service=email_service_cls(), **kwargs)


def test_recurrence_job_creates_next_occurrence(db, email_service_cls):
    egresos_service.create_egreso(db, {
        "descripcion": "Alquiler galpón",
        "monto": 800,
        "fecha_compromiso": date(2099, 1, 15),
        "es_recurrente": True,
        "frecuencia_recurrencia": "Mensual",
        "numero_repeticiones": 3,
    })
    db.commit()

    run = _scheduler(email_service_cls).run_recurrence()
    assert run.job_name == RECURRENCE_JOB_ID
    assert run.status == "success"
    assert run.message == "1 ocurrencia(s) creada(s)"

    db.expire_all()
    fechas = sorted(e.fecha_compromiso for e in db.query(Egreso).all())
    assert fechas == [date(2099, 1, 15), date(2099, 2, 15)]


def test_seguimiento_job_records_run(db, email_service_cls):
    run = _scheduler(email_service_cls).run_seguimiento()
    assert run.status == "success"
    assert "prospectos: 0 recordatorio(s)" in run.message
    assert db.query(JobRun).filter(JobRun.job_name == SEGUIMIENTO_JOB_ID).count() == 1


def test_failing_job_is_recorded_and_does_not_raise(db, email_service_cls):
    def boom(session):
        raise RuntimeError("sin conexión")

    run = _scheduler(email_service_cls)._run("prueba", boom)
    assert run.status == "error"
    assert run.message == "RuntimeError: sin conexión"
    assert run.finished_at >= run.started_at


def test_cashea_job_failure_leaves_error_rows(db, email_service_cls):
    scheduler = _scheduler(email_service_cls, cashea_client_factory=lambda: CasheaClient(email="", password=""))
    run = scheduler.run_cashea()
    assert run.job_name == CASHEA_JOB_ID
    assert run.status == "error"

    db.expire_all()
    download = db.query(CasheaAutomaticDownload).one()
    assert download.status == "error"
    assert db.query(UploadHistory).one().status == "error"


def test_reschedule_is_noop_when_not_running(db, email_service_cls):
    scheduler = _scheduler(email_service_cls)
    assert not scheduler.running
    scheduler.reschedule_cashea()
    scheduler.stop()
    assert not scheduler.running
