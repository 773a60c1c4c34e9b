import logging
import logging.config
import json
from datetime import datetime
from typing import Dict, Any, Optional
from pathlib import Path

from app.core.config import settings


# Campos de contexto que se copian del LogRecord al JSON cuando existen
CONTEXT_FIELDS = (
    "service",
    "endpoint",
    "method",
    "status_code",
    "response_time_ms",
    "request_id",
    "user_id",
    "video_id",
    "interval_count",
    "total_unique_seconds",
    "completion_percentage",
    "error_code",
)


class StructuredFormatter(logging.Formatter):
    """
    Formatter que genera logs en formato JSON estructurado
    para facilitar la integración con sistemas de monitoreo
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Agregar información adicional si está disponible
        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        # Agregar información de excepción si existe
        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


def build_logging_config(log_dir: Path, level: str = "INFO") -> Dict[str, Any]:
    """
    Construye el diccionario para logging.config.dictConfig
    """
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": StructuredFormatter,
            },
            "simple": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "simple",
                "level": level,
                "stream": "ext://sys.stdout"
            },
            "file_all": {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "structured",
                "filename": str(log_dir / "app.log"),
                "maxBytes": 10485760,  # 10MB
                "backupCount": 10,
                "level": level
            },
            "file_errors": {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "structured",
                "filename": str(log_dir / "errors.log"),
                "maxBytes": 10485760,  # 10MB
                "backupCount": 10,
                "level": "ERROR"
            },
            "file_tracking": {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "structured",
                "filename": str(log_dir / "tracking.log"),
                "maxBytes": 10485760,  # 10MB
                "backupCount": 5,
                "level": level
            }
        },
        "loggers": {
            "app": {
                "level": level,
                "handlers": ["console", "file_all", "file_errors"],
                "propagate": False
            },
            "app.tracking": {
                "level": level,
                "handlers": ["file_tracking", "file_errors"],
                "propagate": True
            },
            "uvicorn": {
                "level": "INFO",
                "handlers": ["console", "file_all"],
                "propagate": False
            },
            "uvicorn.access": {
                "level": "INFO",
                "handlers": ["file_all"],
                "propagate": False
            }
        },
        "root": {
            "level": "WARNING",
            "handlers": ["console", "file_all"]
        }
    }


def setup_logging(log_dir: Optional[str] = None, level: Optional[str] = None) -> None:
    """
    Configura el sistema de logging con rotación y formato estructurado
    para integración con sistemas de monitoreo
    """
    # Crear directorio de logs si no existe
    path = Path(log_dir or settings.LOG_DIR)
    path.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(build_logging_config(path, level or settings.LOG_LEVEL))

    logger = logging.getLogger("app")
    logger.info("Logging system initialized successfully")
    logger.info(f"Log files will be stored in: {path.absolute()}")


class LoggerAdapter(logging.LoggerAdapter):
    """
    Adapter personalizado para agregar contexto adicional a los logs
    """

    def __init__(self, logger: logging.Logger, extra: Dict[str, Any] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        # El contexto del adapter no pisa el extra explícito de la llamada
        if self.extra:
            merged = dict(self.extra)
            merged.update(kwargs.get('extra', {}))
            kwargs['extra'] = merged

        return msg, kwargs


def get_tracking_logger(user_id: str, video_id: str) -> LoggerAdapter:
    """
    Obtiene un logger de seguimiento con la identidad de la sesión de visualización
    """
    base_logger = logging.getLogger("app.tracking")
    return LoggerAdapter(base_logger, {
        "service": "tracking",
        "user_id": user_id,
        "video_id": video_id,
    })


def get_api_logger() -> LoggerAdapter:
    """
    Obtiene un logger específico para operaciones de API
    """
    base_logger = logging.getLogger("app.api")
    return LoggerAdapter(base_logger, {"service": "api"})


def log_api_request(logger: logging.Logger, method: str, endpoint: str,
                   status_code: int = None, response_time_ms: int = None,
                   user_id: str = None, **kwargs):
    """
    Registra información de una petición API con contexto estructurado

    Args:
        logger: Logger a usar
        method: Método HTTP
        endpoint: Endpoint accedido
        status_code: Código de respuesta HTTP
        response_time_ms: Tiempo de respuesta en millisegundos
        user_id: ID del usuario (si está disponible)
        **kwargs: Información adicional
    """
    extra = {
        "method": method,
        "endpoint": endpoint,
        "service": "api"
    }

    if status_code:
        extra["status_code"] = status_code
    if response_time_ms is not None:
        extra["response_time_ms"] = response_time_ms
    if user_id:
        extra["user_id"] = user_id

    extra.update(kwargs)

    if status_code and status_code >= 500:
        logger.error(f"API request failed: {method} {endpoint}", extra=extra)
    elif status_code and status_code >= 400:
        logger.warning(f"API request rejected: {method} {endpoint}", extra=extra)
    else:
        logger.info(f"API request: {method} {endpoint}", extra=extra)
