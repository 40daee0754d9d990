from pydantic_settings import BaseSettings
from typing import List, Optional
import os


class Settings(BaseSettings):
    env: str = "dev"
    secret_key: str = "change_me_super_secret"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 12
    refresh_token_expire_minutes: int = 60 * 24 * 30
    bcrypt_rounds: int = 12
    database_url: str = "postgresql+psycopg2://boxi:boxipass@db:5432/boxisleep"
    backend_cors_origins: str = "http://localhost:5173"
    log_level: str = "INFO"

    # Railway specific - use PORT env var if available
    port: int = int(os.getenv("PORT", "8000"))

    # Zona horaria de negocio (fechas "de hoy" para seguimientos y recurrencias)
    timezone: str = "America/Caracas"

    # Scheduler
    scheduler_enabled: bool = True
    seguimiento_hour: int = 1
    recurrence_hour: int = 2

    # Numeración de órdenes manuales
    manual_order_start: int = 10001

    # Cashea (BNPL)
    cashea_api_url: str = (
        "https://cashea.retool.com/api/public/83942c1c-e0a6-11ee-9c54-4bdcfcdd4f2c/query"
        "?queryName=getOnlineOrdersWithProducts"
    )
    cashea_email: Optional[str] = None
    cashea_password: Optional[str] = None
    cashea_store_name: str = "Boxi Sleep"
    cashea_webhook_url: Optional[str] = None
    cashea_timeout_seconds: float = 60.0

    # Webhooks entrantes
    webhook_secret: Optional[str] = None

    # Email
    email_enabled: bool = True
    email_api_url: str = "https://api.resend.com/emails"
    email_api_key: Optional[str] = None
    email_from_boxisleep: str = "BoxiSleep <pedidos@boxisleep.com>"
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    email_from_mompox: str = "Mompox <pedidos@mompox.com>"

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        origins = self.backend_cors_origins
        return [origin.strip() for origin in origins.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
