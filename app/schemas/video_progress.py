# app/schemas/video_progress.py
from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Annotated, List, Optional, Tuple

from app.utils.intervals import merge_all, to_pairs

Seconds = Annotated[float, Field(ge=0, allow_inf_nan=False)]
IntervalPair = Tuple[Seconds, Seconds]


def normalize_pairs(value: Optional[List[IntervalPair]]) -> Optional[List[List[float]]]:
    """Los pares invertidos se descartan y el resto se fusiona; nunca se guarda un conjunto solapado."""
    if value is None:
        return None
    return to_pairs(merge_all(value))


class ProgressSave(BaseModel):
    """Schema para guardar (crear o reemplazar) el progreso de un video."""
    intervals: List[IntervalPair] = Field(default_factory=list, description="Pares [inicio, fin] en segundos")
    total_unique_seconds: Optional[int] = Field(
        None, ge=0, description="Informativo; el servidor lo recalcula a partir de los intervalos"
    )
    last_position: Seconds = Field(0.0, description="Última posición del cabezal de reproducción")
    duration: Seconds = Field(0.0, description="Duración del video en segundos (0 si aún no se conoce)")
    updated_at: Optional[datetime] = None

    @field_validator('intervals')
    @classmethod
    def normalize_intervals(cls, value):
        return normalize_pairs(value)

    class Config:
        json_schema_extra = {
            "example": {
                "intervals": [[0, 42], [60, 75]],
                "total_unique_seconds": 57,
                "last_position": 75.0,
                "duration": 600.0
            }
        }


class ProgressUpdate(BaseModel):
    """Schema para la actualización parcial del progreso."""
    intervals: Optional[List[IntervalPair]] = None
    last_position: Optional[Seconds] = None
    duration: Optional[Seconds] = None
    updated_at: Optional[datetime] = None

    @field_validator('intervals')
    @classmethod
    def normalize_intervals(cls, value):
        return normalize_pairs(value)

    class Config:
        json_schema_extra = {
            "example": {
                "last_position": 120.0,
                "duration": 600.0
            }
        }


class ProgressResponse(BaseModel):
    """Schema para consultar el progreso guardado."""
    user_id: str
    video_id: str
    intervals: List[List[float]]
    total_unique_seconds: int
    completion_percentage: int = Field(..., ge=0, le=100)
    last_position: float
    duration: float
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class DeleteResponse(BaseModel):
    success: bool
    user_id: str
    video_id: str
