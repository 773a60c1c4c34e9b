from typing import Iterable, Optional, Sequence
from sqlalchemy.orm import Session

from app.models.video_progress import VideoProgress
from app.schemas.video_progress import ProgressSave, ProgressUpdate
from app.utils.intervals import from_pairs, merge_all, round_half_up, to_pairs, total_watched


class CRUDVideoProgress:
    def get(self, db: Session, user_id: str, video_id: str) -> Optional[VideoProgress]:
        return db.query(VideoProgress).filter(
            VideoProgress.user_id == user_id,
            VideoProgress.video_id == video_id
        ).first()

    def _apply_intervals(self, db_obj: VideoProgress, intervals: Iterable[Sequence[float]]) -> None:
        """
        Normaliza los intervalos antes de guardarlos y recalcula el total, de modo
        que lo almacenado siempre cumple el invariante de conjunto fusionado.
        """
        normalized = merge_all(from_pairs(intervals))
        db_obj.intervals = to_pairs(normalized)
        db_obj.total_unique_seconds = round_half_up(total_watched(normalized))

    def upsert(self, db: Session, user_id: str, video_id: str, data: ProgressSave) -> VideoProgress:
        """
        Crea o reemplaza el progreso completo. La última escritura gana.
        """
        db_obj = self.get(db, user_id, video_id)
        if db_obj is None:
            db_obj = VideoProgress(user_id=user_id, video_id=video_id)
            db.add(db_obj)

        self._apply_intervals(db_obj, data.intervals)
        db_obj.last_position = data.last_position
        db_obj.duration = data.duration
        if data.updated_at is not None:
            db_obj.updated_at = data.updated_at

        db.commit()
        db.refresh(db_obj)
        return db_obj

    def update(self, db: Session, user_id: str, video_id: str, data: ProgressUpdate) -> Optional[VideoProgress]:
        db_obj = self.get(db, user_id, video_id)
        if db_obj is None:
            return None

        update_data = data.model_dump(exclude_unset=True, exclude_none=True)
        if "intervals" in update_data:
            self._apply_intervals(db_obj, update_data.pop("intervals"))
        for field, value in update_data.items():
            setattr(db_obj, field, value)

        db.commit()
        db.refresh(db_obj)
        return db_obj

    def delete(self, db: Session, user_id: str, video_id: str) -> bool:
        db_obj = self.get(db, user_id, video_id)
        if db_obj is None:
            return False
        db.delete(db_obj)
        db.commit()
        return True

video_progress = CRUDVideoProgress()
