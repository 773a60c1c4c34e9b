# app/services/progress_saver.py
import httpx
import logging
import time
from typing import Callable, Optional

from app.core.config import settings
from app.services.watch_tracker import PlaybackState, TrackerSnapshot, WatchProgressTracker

logger = logging.getLogger(__name__)


class ProgressSaveError(Exception):
    """
    Fallo al persistir el snapshot. Es reintentable: el estado en memoria del
    tracker sigue siendo la fuente de verdad hasta el siguiente guardado exitoso.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ProgressSaver:
    """
    Cliente de la API de progreso usado por el cableado del reproductor:
    guarda snapshots (bajo demanda, cada N segundos o en pausas y saltos), carga el estado
    persistido y lo elimina al resetear.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
        auto_save_interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = (base_url or settings.PROGRESS_API_URL).rstrip('/')
        self.client = client or httpx.Client(timeout=timeout or settings.PROGRESS_API_TIMEOUT)
        self.auto_save_interval = (
            settings.AUTO_SAVE_INTERVAL_SECONDS if auto_save_interval is None else auto_save_interval
        )
        self._clock = clock
        self.last_save_time: Optional[float] = None
        self._last_attempt: Optional[float] = None

    def _url(self, user_id: str, video_id: str) -> str:
        return f"{self.base_url}/api/v1/progress/{user_id}/{video_id}"

    def save(self, tracker: WatchProgressTracker) -> dict:
        """
        Envía el snapshot actual del tracker. Lanza ProgressSaveError si la
        petición falla; el tracker no se modifica en ningún caso.
        """
        snapshot = tracker.get_snapshot()
        self._last_attempt = self._clock()
        try:
            response = self.client.post(
                self._url(snapshot.user_id, snapshot.video_id),
                json=snapshot.to_payload()
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Error guardando progreso: HTTP {e.response.status_code}")
            raise ProgressSaveError(
                f"El servidor rechazó el guardado: HTTP {e.response.status_code}",
                status_code=e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Error guardando progreso: {str(e)}")
            raise ProgressSaveError(f"No se pudo guardar el progreso: {str(e)}") from e

        self.last_save_time = self._clock()
        logger.info(
            f"Progreso guardado: user={snapshot.user_id}, video={snapshot.video_id}, "
            f"total={snapshot.total_unique_seconds}s"
        )
        return response.json()

    def maybe_autosave(self, tracker: WatchProgressTracker) -> bool:
        """
        Guardado periódico: solo mientras se reproduce y cuando ha pasado el
        intervalo configurado desde el último intento. Los errores se registran
        y no se propagan.
        """
        if self.auto_save_interval <= 0 or tracker.state is not PlaybackState.PLAYING:
            return False
        now = self._clock()
        if self._last_attempt is not None and now - self._last_attempt < self.auto_save_interval:
            return False
        try:
            self.save(tracker)
        except ProgressSaveError as e:
            logger.warning(f"Auto-guardado fallido, se reintentará: {str(e)}")
            return False
        return True

    def attach(self, tracker: WatchProgressTracker) -> Callable[[], None]:
        """
        Guarda en cada pausa y en cada salto del tracker, además del guardado
        periódico. Los fallos se registran y no interrumpen la reproducción.
        Devuelve la función para desconectar el guardado.
        """
        initial = tracker.get_snapshot()
        last = {"state": initial.state, "seeks": initial.session_stats.seeks}

        def on_change(snapshot: TrackerSnapshot) -> None:
            paused = snapshot.state is PlaybackState.PAUSED and last["state"] is not PlaybackState.PAUSED
            seeked = snapshot.session_stats.seeks > last["seeks"]
            last["state"] = snapshot.state
            last["seeks"] = snapshot.session_stats.seeks
            if not (paused or seeked):
                return
            try:
                self.save(tracker)
            except ProgressSaveError as e:
                logger.warning(f"Guardado por evento fallido, se reintentará: {str(e)}")

        return tracker.subscribe(on_change)

    def load(self, tracker: WatchProgressTracker) -> bool:
        """
        Carga el progreso persistido en el tracker. Devuelve False si no existe.
        """
        try:
            response = self.client.get(self._url(tracker.user_id, tracker.video_id))
            if response.status_code == 404:
                return False
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Error cargando progreso: {str(e)}")
            raise ProgressSaveError(f"No se pudo cargar el progreso: {str(e)}") from e

        data = response.json()
        tracker.load_snapshot(
            data.get("intervals") or [],
            last_position=data.get("last_position") or 0.0,
            duration=data.get("duration") or 0.0,
        )
        return True

    def delete(self, user_id: str, video_id: str) -> bool:
        try:
            response = self.client.delete(self._url(user_id, video_id))
            if response.status_code == 404:
                return False
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Error eliminando progreso: {str(e)}")
            raise ProgressSaveError(f"No se pudo eliminar el progreso: {str(e)}") from e
        return True

    def reset(self, tracker: WatchProgressTracker) -> bool:
        """Resetea el tracker en memoria y después elimina el registro remoto."""
        tracker.reset()
        return self.delete(tracker.user_id, tracker.video_id)

    def close(self) -> None:
        self.client.close()
