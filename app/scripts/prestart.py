# app/scripts/prestart.py
# Espera a que la base de datos acepte conexiones antes de arrancar la API o las migraciones
import logging
import sys
import time
from typing import Callable

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import SQLAlchemyError
from app.core.config import settings

logger = logging.getLogger(__name__)

MAX_TRIES = 60
WAIT_SECONDS = 2


def wait_for_database(
    engine: Engine,
    max_tries: int = MAX_TRIES,
    wait_seconds: float = WAIT_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    for i in range(1, max_tries + 1):
        try:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            logger.info("Conexión a la base de datos establecida")
            return True
        except SQLAlchemyError as e:
            logger.warning(f"Intento {i}/{max_tries}: base de datos no disponible. Reintentando...")
            logger.debug(f"Error de conexión: {e}")
            if i < max_tries:
                sleep(wait_seconds)

    logger.error("No se pudo conectar a la base de datos después de varios intentos")
    return False


def main() -> int:
    logging.basicConfig(level=logging.INFO)
    # Se imprime la URI sin contraseña para depuración
    logger.info(f"Esperando a la base de datos en: {make_url(settings.DATABASE_URI).render_as_string(hide_password=True)}")
    engine = create_engine(settings.DATABASE_URI)
    try:
        return 0 if wait_for_database(engine) else 1
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
