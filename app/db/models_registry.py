# app/db/models_registry.py
# Este archivo importa todos los modelos para que Alembic y create_all los detecten

from app.db.base import Base
from app.models.video_progress import VideoProgress

# Exportar Base para uso en Alembic
__all__ = ["Base", "VideoProgress"]
