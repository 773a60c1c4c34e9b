# app/core/config.py
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import PostgresDsn, computed_field

class Settings(BaseSettings):
    """
    Gestiona la configuración de la aplicación cargando variables de entorno.
    Utiliza Pydantic para la validación de tipos.
    """
    model_config = SettingsConfigDict(
        env_file=".env", env_ignore_case=True, extra="ignore"
    )

    # --- Base de datos ---
    # Si DATABASE_URL está definida tiene prioridad sobre las variables POSTGRES_*
    DATABASE_URL: Optional[str] = None
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_DB: str = "watch_progress"
    POSTGRES_PORT: int = 5432

    # --- Seguimiento de segmentos vistos ---
    # Banda [MIN, MAX) de deltas entre muestras que cuentan como reproducción continua
    MIN_SEGMENT_SECONDS: float = 0.5
    MAX_SEGMENT_SECONDS: float = 2.0
    AUTO_SAVE_INTERVAL_SECONDS: float = 5.0

    # --- API de progreso (usada por el cliente de guardado) ---
    PROGRESS_API_URL: str = "http://localhost:8000"
    PROGRESS_API_TIMEOUT: float = 10.0

    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # --- Logging ---
    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"

    @computed_field
    @property
    def DATABASE_URI(self) -> str:
        """
        Genera la URI de conexión a la base de datos en formato SQLAlchemy.
        Pydantic validará que la URI construida sea correcta.
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        dsn = PostgresDsn.build(
            scheme="postgresql+psycopg2",
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            host=self.POSTGRES_SERVER,
            port=self.POSTGRES_PORT,
            path=self.POSTGRES_DB,
        )
        return str(dsn)

# Instancia única de la configuración que será usada en toda la aplicación.
settings = Settings()
