from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.database import init_db
from app.core.logging_config import configure_logging
from app.routes.admin import router as admin_router
from app.routes.auth import router as auth_router
from app.routes.cashea import router as cashea_router
from app.routes.egresos import router as egresos_router
from app.routes.health import router as health_router
from app.routes.import_export import router as import_export_router
from app.routes.payments import router as payments_router
from app.routes.prospectos import router as prospectos_router
from app.routes.sales import router as sales_router
from app.routes.seguimiento import router as seguimiento_router
from app.routes.status_history import router as status_history_router
from app.routes.verification import router as verification_router
from app.routes.webhooks import router as webhooks_router
from app.services.scheduler import JobScheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    scheduler = None
    if settings.scheduler_enabled and settings.env != "test":
        scheduler = JobScheduler()
        scheduler.start()
        app.state.scheduler = scheduler
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.stop()
            app.state.scheduler = None


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="BoxiSleep Back Office API", version="0.1.0", lifespan=lifespan)
    app.state.scheduler = None

    origins = settings.cors_origins
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(health_router, tags=["health"])
    app.include_router(auth_router, prefix="/auth", tags=["auth"])
    app.include_router(admin_router, prefix="/admin", tags=["admin"])
    app.include_router(sales_router, prefix="/sales", tags=["sales"])
    app.include_router(payments_router, prefix="/orders", tags=["payments"])
    app.include_router(verification_router, prefix="/verification", tags=["verification"])
    app.include_router(egresos_router, prefix="/egresos", tags=["egresos"])
    app.include_router(prospectos_router, prefix="/prospectos", tags=["prospectos"])
    app.include_router(seguimiento_router, prefix="/seguimiento", tags=["seguimiento"])
    app.include_router(cashea_router, prefix="/cashea", tags=["cashea"])
    app.include_router(webhooks_router, prefix="/webhooks", tags=["webhooks"])
    app.include_router(import_export_router, tags=["import-export"])
    app.include_router(status_history_router, prefix="/status-history", tags=["status-history"])

    return app


app = create_app()
