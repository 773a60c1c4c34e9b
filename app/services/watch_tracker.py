# app/services/watch_tracker.py
"""
Seguimiento de la visualización de un video por parte de un usuario.

WatchProgressTracker es el único dueño del conjunto de intervalos vistos, de
las estadísticas de la sesión y del cursor de reproducción. Recibe los eventos
del reproductor (timeupdate, play, pause, seeked, ratechange, duración) en una
sola línea de tiempo y expone snapshot/load/reset para la capa de persistencia.
"""
import enum
import math
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from app.core.config import settings
from app.core.logging_config import get_tracking_logger
from app.utils.intervals import (
    Interval,
    compute_progress,
    from_pairs,
    make_interval,
    merge,
    merge_all,
    round_half_up,
    to_pairs,
)


class PlaybackState(str, enum.Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass
class SessionStats:
    """Contadores de acciones del espectador durante la sesión."""
    watch_time: float = 0.0
    pauses: int = 0
    seeks: int = 0
    playback_rate: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "watch_time": self.watch_time,
            "pauses": self.pauses,
            "seeks": self.seeks,
            "playback_rate": self.playback_rate,
        }


class SessionStatsTracker:
    """
    Cuenta pausas, saltos y cambios de velocidad, y acumula el tiempo de
    reloj transcurrido mientras se reproduce. Este tiempo es bruto: incluye
    repeticiones, a diferencia de los segundos únicos del conjunto visto.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._stats = SessionStats()
        self._playing_since: Optional[float] = None

    @property
    def is_playing(self) -> bool:
        return self._playing_since is not None

    def on_play(self) -> None:
        if self._playing_since is None:
            self._playing_since = self._clock()

    def on_stop(self) -> None:
        self.tick()
        self._playing_since = None

    def on_pause(self) -> None:
        self.on_stop()
        self._stats.pauses += 1

    def on_seek(self) -> None:
        self._stats.seeks += 1

    def on_rate_change(self, rate: float) -> bool:
        if not rate > 0 or math.isinf(rate):
            return False
        self._stats.playback_rate = rate
        return True

    def tick(self) -> None:
        """Vuelca al acumulado el tiempo reproducido desde la última marca."""
        if self._playing_since is None:
            return
        now = self._clock()
        self._stats.watch_time += max(0.0, now - self._playing_since)
        self._playing_since = now

    def snapshot(self) -> SessionStats:
        stats = replace(self._stats)
        if self._playing_since is not None:
            stats.watch_time += max(0.0, self._clock() - self._playing_since)
        return stats

    def reset(self) -> None:
        self._stats = SessionStats()
        if self._playing_since is not None:
            self._playing_since = self._clock()


class WatchSegmentRecorder:
    """
    Convierte pares de posiciones consecutivas en intervalos vistos.

    Solo los deltas dentro de [min_segment, max_segment) cuentan como
    reproducción continua; los menores son ruido del muestreo y los mayores
    se tratan como un salto o una pestaña suspendida.
    """

    def __init__(self, min_segment: Optional[float] = None, max_segment: Optional[float] = None):
        self.min_segment = settings.MIN_SEGMENT_SECONDS if min_segment is None else min_segment
        self.max_segment = settings.MAX_SEGMENT_SECONDS if max_segment is None else max_segment
        if not 0 < self.min_segment < self.max_segment:
            raise ValueError(
                f"Banda de segmento inválida: [{self.min_segment}, {self.max_segment})"
            )
        self.cursor: Optional[float] = None

    def accepts(self, delta: float) -> bool:
        return self.min_segment <= delta < self.max_segment

    def observe(self, previous: float, current: float, is_playing: bool) -> Optional[Interval]:
        # El cursor avanza siempre, también en observaciones descartadas
        self.cursor = current
        if not is_playing or not self.accepts(current - previous):
            return None
        return make_interval(previous, current)

    def flush(self, position: float, is_playing: bool = True) -> Optional[Interval]:
        """
        Cierra la racha actual hasta la posición reportada por una pausa o un
        salto, con el mismo filtro, y deja el cursor anclado en esa posición.
        """
        if self.cursor is None:
            self.cursor = position
            return None
        return self.observe(self.cursor, position, is_playing)

    def reanchor(self, position: float) -> None:
        self.cursor = position


@dataclass(frozen=True)
class TrackerSnapshot:
    user_id: str
    video_id: str
    watched_set: Tuple[Interval, ...]
    total_unique_seconds: float
    completion_percentage: int
    session_stats: SessionStats
    last_position: float
    duration: float
    state: PlaybackState = PlaybackState.IDLE

    def to_payload(self) -> Dict[str, Any]:
        """Cuerpo que espera POST /api/v1/progress/{user_id}/{video_id}."""
        return {
            "intervals": to_pairs(self.watched_set),
            "total_unique_seconds": round_half_up(self.total_unique_seconds),
            "last_position": self.last_position,
            "duration": self.duration,
        }


Subscriber = Callable[[TrackerSnapshot], None]


class WatchProgressTracker:
    """
    Estado de visualización de un par (usuario, video).

    Uso típico desde el cableado de eventos del reproductor:

        tracker = WatchProgressTracker("user-1", "intro-video")
        tracker.handle_duration(600)
        tracker.handle_play()
        tracker.handle_time_update(0.8)
        tracker.handle_pause()
        tracker.get_snapshot().completion_percentage
    """

    def __init__(
        self,
        user_id: str,
        video_id: str,
        duration: float = 0.0,
        min_segment: Optional[float] = None,
        max_segment: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.user_id = user_id
        self.video_id = video_id
        self.logger = get_tracking_logger(user_id, video_id)
        self.recorder = WatchSegmentRecorder(min_segment, max_segment)
        self.stats = SessionStatsTracker(clock)
        self._watched: List[Interval] = []
        self._duration = 0.0
        self._current_time = 0.0
        self._state = PlaybackState.IDLE
        self._subscribers: List[Subscriber] = []
        self._set_duration(duration)

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def watched_set(self) -> Tuple[Interval, ...]:
        return tuple(self._watched)

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def current_time(self) -> float:
        return self._current_time

    # --- Observadores -------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Registra un observador; devuelve la función para darlo de baja."""
        self._subscribers.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _notify(self) -> None:
        if not self._subscribers:
            return
        snapshot = self.get_snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                self.logger.exception("Error en observador del tracker")

    # --- Núcleo -------------------------------------------------------------

    def _add_interval(self, interval: Interval) -> None:
        self._watched = merge(self._watched, interval)
        self.logger.debug(
            f"Intervalo registrado: {interval.start}-{interval.end}s",
            extra={"interval_count": len(self._watched)},
        )

    def _set_duration(self, duration: float) -> bool:
        if duration is None or not duration > 0 or math.isinf(duration):
            return False
        self._duration = float(duration)
        return True

    def record_observation(self, previous: float, current: float, is_playing: bool) -> Optional[Interval]:
        """Procesa una muestra de posición; devuelve el intervalo emitido, si lo hay."""
        self._current_time = current
        interval = self.recorder.observe(previous, current, is_playing)
        if interval is not None:
            self._add_interval(interval)
            self._notify()
        return interval

    # --- Eventos del reproductor ---------------------------------------------

    def handle_time_update(self, current_time: float) -> Optional[Interval]:
        self.stats.tick()
        if self._state is PlaybackState.PLAYING and self.recorder.cursor is not None:
            return self.record_observation(self.recorder.cursor, current_time, True)
        self.recorder.reanchor(current_time)
        self._current_time = current_time
        return None

    def handle_play(self) -> None:
        if self._state is PlaybackState.PLAYING:
            return
        self._state = PlaybackState.PLAYING
        self.recorder.reanchor(self._current_time)
        self.stats.on_play()
        self.logger.debug(f"Reproducción iniciada en {self._current_time}s")

    def handle_pause(self, position: Optional[float] = None) -> Optional[Interval]:
        if self._state is not PlaybackState.PLAYING:
            return None
        if position is None:
            position = self._current_time
        self._current_time = position
        interval = self.recorder.flush(position, is_playing=True)
        if interval is not None:
            self._add_interval(interval)
        self._state = PlaybackState.PAUSED
        self.stats.on_pause()
        self._notify()
        return interval

    def handle_seeked(self, new_time: float, from_position: Optional[float] = None) -> Optional[Interval]:
        """
        Salto a new_time. Si se conoce la posición previa al salto se cierra la
        racha hasta ahí; el cursor queda anclado en new_time en cualquier caso.
        """
        was_playing = self._state is PlaybackState.PLAYING
        flush_to = self._current_time if from_position is None else from_position
        interval = self.recorder.flush(flush_to, is_playing=was_playing)
        if interval is not None:
            self._add_interval(interval)
        self.recorder.reanchor(new_time)
        self._current_time = new_time
        self._state = PlaybackState.PLAYING if was_playing else PlaybackState.PAUSED
        self.stats.on_seek()
        self._notify()
        return interval

    def handle_rate_change(self, rate: float) -> None:
        if not self.stats.on_rate_change(rate):
            self.logger.warning(f"Velocidad de reproducción ignorada: {rate}")
            return
        self._notify()

    def handle_duration(self, duration: float) -> None:
        if not self._set_duration(duration):
            self.logger.debug(f"Duración ignorada: {duration}")
            return
        self._notify()

    # --- Frontera con la persistencia ------------------------------------------

    def get_snapshot(self) -> TrackerSnapshot:
        progress = compute_progress(self._watched, self._duration)
        return TrackerSnapshot(
            user_id=self.user_id,
            video_id=self.video_id,
            watched_set=tuple(self._watched),
            total_unique_seconds=progress.total_unique_seconds,
            completion_percentage=progress.completion_percentage,
            session_stats=self.stats.snapshot(),
            last_position=self._current_time,
            duration=self._duration,
            state=self._state,
        )

    def load_snapshot(
        self,
        watched_set: Sequence[Sequence[float]],
        last_position: float = 0.0,
        duration: float = 0.0,
    ) -> None:
        """
        Carga un estado persistido. El conjunto se vuelve a normalizar con
        merge_all porque el almacenamiento externo puede devolverlo corrupto.
        """
        watched_set = list(watched_set or [])
        normalized = merge_all(from_pairs(watched_set))
        if len(normalized) != len(watched_set):
            self.logger.info(
                f"Conjunto persistido normalizado: {len(watched_set)} -> {len(normalized)} intervalos",
                extra={"interval_count": len(normalized)},
            )
        self._watched = normalized
        if last_position is None or not math.isfinite(last_position):
            last_position = 0.0
        self._current_time = last_position
        self.recorder.reanchor(self._current_time)
        self._set_duration(duration)
        self._notify()

    def reset(self) -> None:
        """Vacía el conjunto visto y las estadísticas de la sesión."""
        self._watched = []
        self.stats.reset()
        self.logger.info("Progreso reiniciado")
        self._notify()
