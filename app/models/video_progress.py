# app/models/video_progress.py
from sqlalchemy import Column, Integer, String, Float, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func
from app.db.base import Base


class VideoProgress(Base):
    """
    Modelo para el progreso de visualización de un video.
    Guarda el conjunto de intervalos vistos ya fusionado como lista de pares [inicio, fin].
    """
    __tablename__ = "video_progress"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(100), nullable=False, index=True)
    video_id = Column(String(100), nullable=False, index=True)
    intervals = Column(JSON, nullable=False, default=list)
    total_unique_seconds = Column(Integer, default=0, nullable=False)
    last_position = Column(Float, default=0.0, nullable=False)
    duration = Column(Float, default=0.0, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'video_id', name='uq_video_progress_user_video'),
    )

    def __repr__(self):
        return (
            f"<VideoProgress(user_id='{self.user_id}', video_id='{self.video_id}', "
            f"intervals={len(self.intervals or [])}, seconds={self.total_unique_seconds})>"
        )
