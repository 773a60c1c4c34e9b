# app/api/v1/endpoints/progress.py
"""
Endpoints para persistir y consultar el progreso de visualización de videos.
El conjunto de intervalos se normaliza siempre antes de guardarse.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from app.api.v1.endpoints.metrics import progress_operations_total, stored_interval_count
from app.core.logging_config import get_api_logger
from app.crud.crud_video_progress import video_progress as crud_progress
from app.db.session import get_db
from app.models.video_progress import VideoProgress
from app.schemas.video_progress import (
    DeleteResponse,
    ProgressResponse,
    ProgressSave,
    ProgressUpdate,
)
from app.utils.intervals import compute_progress, from_pairs

router = APIRouter()
logger = get_api_logger()


def build_response(progress: VideoProgress) -> ProgressResponse:
    return ProgressResponse(
        user_id=progress.user_id,
        video_id=progress.video_id,
        intervals=progress.intervals or [],
        total_unique_seconds=progress.total_unique_seconds,
        completion_percentage=compute_progress(
            from_pairs(progress.intervals), progress.duration or 0.0
        ).completion_percentage,
        last_position=progress.last_position,
        duration=progress.duration,
        updated_at=progress.updated_at
    )


def storage_error(db: Session, operation: str, action: str, error: Exception) -> HTTPException:
    logger.error(f"Error al {action} progreso: {str(error)}")
    db.rollback()
    progress_operations_total.labels(operation=operation, status="error").inc()
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Error al {action} el progreso"
    )


@router.get(
    "/progress/{user_id}/{video_id}",
    response_model=ProgressResponse,
    summary="Consultar progreso",
    description="Obtiene los intervalos vistos y el avance de un usuario para un video."
)
def get_progress(user_id: str, video_id: str, db: Session = Depends(get_db)):
    """
    - **user_id**: ID del usuario
    - **video_id**: Identificador del video
    """
    try:
        progress = crud_progress.get(db, user_id, video_id)
    except SQLAlchemyError as e:
        raise storage_error(db, "get", "consultar", e)

    if not progress:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No se encontró progreso para este usuario y video"
        )

    return build_response(progress)


@router.post(
    "/progress/{user_id}/{video_id}",
    response_model=ProgressResponse,
    summary="Guardar progreso",
    description="Crea o reemplaza el progreso completo. La última escritura gana."
)
def save_progress(
    user_id: str,
    video_id: str,
    request: ProgressSave,
    db: Session = Depends(get_db)
):
    """
    Guarda el snapshot enviado por el reproductor.

    - **intervals**: pares [inicio, fin]; se fusionan antes de guardarse
    - **last_position**: última posición conocida
    - **duration**: duración del video
    """
    try:
        progress = crud_progress.upsert(db, user_id, video_id, request)
    except SQLAlchemyError as e:
        raise storage_error(db, "save", "guardar", e)

    progress_operations_total.labels(operation="save", status="ok").inc()
    stored_interval_count.observe(len(progress.intervals))

    if request.total_unique_seconds is not None and request.total_unique_seconds != progress.total_unique_seconds:
        logger.info(
            f"Total reportado corregido: user={user_id}, video={video_id}, "
            f"reportado={request.total_unique_seconds}s, calculado={progress.total_unique_seconds}s"
        )

    logger.info(
        f"Progreso guardado: user={user_id}, video={video_id}, "
        f"intervalos={len(progress.intervals)}, total={progress.total_unique_seconds}s"
    )
    return build_response(progress)


@router.patch(
    "/progress/{user_id}/{video_id}",
    response_model=ProgressResponse,
    summary="Actualizar progreso parcialmente"
)
def update_progress(
    user_id: str,
    video_id: str,
    request: ProgressUpdate,
    db: Session = Depends(get_db)
):
    try:
        progress = crud_progress.update(db, user_id, video_id, request)
    except SQLAlchemyError as e:
        raise storage_error(db, "update", "actualizar", e)

    if not progress:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No se encontró progreso para actualizar"
        )

    progress_operations_total.labels(operation="update", status="ok").inc()
    return build_response(progress)


@router.delete(
    "/progress/{user_id}/{video_id}",
    response_model=DeleteResponse,
    summary="Resetear progreso",
    description="Elimina el progreso de un usuario para un video específico."
)
def reset_progress(user_id: str, video_id: str, db: Session = Depends(get_db)):
    try:
        deleted = crud_progress.delete(db, user_id, video_id)
    except SQLAlchemyError as e:
        raise storage_error(db, "delete", "eliminar", e)

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No se encontró progreso para eliminar"
        )

    progress_operations_total.labels(operation="delete", status="ok").inc()
    logger.info(f"Progreso eliminado: user={user_id}, video={video_id}")

    return DeleteResponse(success=True, user_id=user_id, video_id=video_id)
