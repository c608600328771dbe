from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


# ==================================================
# BASE DIR
# ==================================================
BASE_DIR = Path(__file__).resolve().parent

# ==================================================
# TEMPLATES
# ==================================================
TEMPLATES_DIR = BASE_DIR / "templates"

DEFAULT_SECRET_KEY = "dev-secret-change-me"


# ==================================================
# URLs públicas (sem barra duplicada)
# ==================================================
def _join_url(base: str, path: str) -> str:
    base = (base or "").strip()
    path = (path or "").strip()

    if not base:
        base = "http://localhost"

    if not base.startswith(("http://", "https://")):
        base = "http://" + base

    if not path.startswith("/"):
        path = "/" + path

    return base.rstrip("/") + path


# ==================================================
# SETTINGS
# ==================================================
class Settings(BaseSettings):
    """
    Config central do console ModCar.

    IMPORTANTE:
    - APP_BASE_URL deve ser a URL pública acessível externamente
      (usada nos links do email de boas-vindas e nas URLs de imagens).
    - As premissas de KPI (churn, CAC, margem) NÃO são calculadas:
      são valores informados pelo negócio.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --------------------------------------------------
    # APP
    # --------------------------------------------------
    ENV: str = "dev"
    APP_NAME: str = "ModCar Console"
    APP_BASE_URL: str = "http://localhost:8000"

    # --------------------------------------------------
    # DATABASE
    # --------------------------------------------------
    DATABASE_URL: str = "sqlite:///./modcar.db"

    # --------------------------------------------------
    # AUTH (provedor de identidade local)
    # --------------------------------------------------
    SECRET_KEY: str = DEFAULT_SECRET_KEY
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_HOURS: int = 8
    MIN_PASSWORD_LENGTH: int = 6

    # --------------------------------------------------
    # EMAIL (Resend)
    # --------------------------------------------------
    RESEND_API_KEY: Optional[str] = None
    RESEND_API_URL: str = "https://api.resend.com/emails"
    EMAIL_FROM: str = "ModCar <onboarding@resend.dev>"
    EMAIL_TIMEOUT_SECONDS: float = 10.0

    # --------------------------------------------------
    # STORAGE
    # --------------------------------------------------
    STORAGE_DIR: str = "./storage"
    STORAGE_PATH: str = "/storage"
    STORAGE_PUBLIC_URL: Optional[str] = None
    MAX_IMAGE_BYTES: int = 5 * 1024 * 1024

    # --------------------------------------------------
    # IMPORTAÇÃO / ERP
    # --------------------------------------------------
    IMPORT_MAX_BYTES: int = 5 * 1024 * 1024
    ERP_SYNC_TOKEN: Optional[str] = None

    # --------------------------------------------------
    # KPIs: premissas (não derivadas de histórico)
    # --------------------------------------------------
    KPI_CHURN_RATE: float = 5.2
    KPI_AVG_RETENTION_MONTHS: int = 18
    KPI_CAC: float = 450.0
    KPI_PROFIT_MARGIN: float = 35.0
    KPI_ACTIVE_WINDOW_DAYS: int = 30

    # --------------------------------------------------
    # POST INIT
    # --------------------------------------------------
    def model_post_init(self, __context: Any) -> None:
        self.STORAGE_PUBLIC_URL = (
            self.STORAGE_PUBLIC_URL
            or _join_url(self.APP_BASE_URL, self.STORAGE_PATH)
        )

        # Segurança em produção
        if self.ENV == "prod" and self.SECRET_KEY == DEFAULT_SECRET_KEY:
            raise RuntimeError(
                "SECRET_KEY padrão não pode ser usada em produção"
            )


# ==================================================
# INSTANCE GLOBAL
# ==================================================
settings = Settings()
