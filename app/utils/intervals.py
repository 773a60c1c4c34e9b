# app/utils/intervals.py
"""
Motor de fusión de intervalos vistos.

Convierte una colección arbitraria de intervalos (desordenados, solapados o
mal formados) en el conjunto canónico: ordenado por inicio, sin solapes y sin
intervalos que se toquen. De ese conjunto se derivan los segundos únicos vistos
y el porcentaje de avance.
"""
import logging
import math
from typing import Iterable, List, NamedTuple, Optional, Sequence

logger = logging.getLogger(__name__)


class Interval(NamedTuple):
    """Tramo contiguo del video confirmado como visto, en segundos."""
    start: float
    end: float

    @property
    def length(self) -> float:
        return self.end - self.start


class ProgressSnapshot(NamedTuple):
    """Totales derivados de un conjunto de intervalos y la duración conocida."""
    total_unique_seconds: float
    completion_percentage: int


def make_interval(start: float, end: float) -> Optional[Interval]:
    """
    Construye un intervalo candidato truncado a segundos enteros.

    El inicio se redondea hacia abajo y el fin hacia arriba, de modo que ante
    la duda un segundo se cuenta como visto. Devuelve None si el resultado es
    degenerado.
    """
    if not (math.isfinite(start) and math.isfinite(end)):
        logger.debug(f"Intervalo candidato no finito descartado: ({start}, {end})")
        return None
    candidate = Interval(max(0, math.floor(start)), math.ceil(end))
    if not candidate.start < candidate.end:
        logger.debug(f"Intervalo candidato descartado: ({start}, {end})")
        return None
    return candidate


def merge_all(intervals: Iterable[Sequence[float]]) -> List[Interval]:
    """
    Normaliza una colección de intervalos al conjunto canónico.

    Los pares con start >= end se descartan sin error. Los intervalos que se
    solapan o se tocan (cur.start <= abierto.end) se fusionan.

    Ejemplo:
        merge_all([(2, 3), (2.5, 4), (10, 12)]) -> [(2, 4), (10, 12)]
    """
    valid = []
    for start, end in intervals:
        # "not <" también descarta NaN; los extremos infinitos no se pueden sumar ni redondear
        if not start < end or math.isinf(start) or math.isinf(end):
            logger.debug(f"Intervalo mal formado descartado: ({start}, {end})")
            continue
        valid.append(Interval(start, end))

    if not valid:
        return []

    valid.sort()

    merged: List[Interval] = []
    open_start, open_end = valid[0]
    for start, end in valid[1:]:
        if start <= open_end:
            open_end = max(open_end, end)
        else:
            merged.append(Interval(open_start, open_end))
            open_start, open_end = start, end
    merged.append(Interval(open_start, open_end))

    return merged


def merge(existing: Sequence[Sequence[float]], candidate: Sequence[float]) -> List[Interval]:
    """Incorpora un intervalo nuevo a un conjunto ya fusionado."""
    return merge_all([*existing, candidate])


def total_watched(intervals: Iterable[Sequence[float]]) -> float:
    """Suma de longitudes. Solo es 'tiempo único' si el conjunto ya está fusionado."""
    return sum(end - start for start, end in intervals)


def round_half_up(value: float) -> int:
    """Redondeo con medios hacia arriba (2.5 -> 3), a diferencia de round(), que redondea al par."""
    return math.floor(value + 0.5)


def progress_percentage(total_seconds: float, duration: float) -> int:
    if duration <= 0:
        return 0
    percentage = round_half_up(total_seconds / duration * 100)
    return max(0, min(100, percentage))


def compute_progress(watched_set: Sequence[Sequence[float]], duration: float) -> ProgressSnapshot:
    """
    Calcula el avance a partir del conjunto visto y la duración del video.

    Una duración desconocida (<= 0) deja el porcentaje en 0; el porcentaje
    siempre queda acotado a [0, 100] aunque el total exceda la duración.
    """
    total = total_watched(watched_set)
    return ProgressSnapshot(
        total_unique_seconds=total,
        completion_percentage=progress_percentage(total, duration),
    )


def is_in_interval(time: float, intervals: Iterable[Sequence[float]]) -> bool:
    return any(start <= time <= end for start, end in intervals)


def format_time(seconds: float) -> str:
    """Formato m:ss."""
    mins = math.floor(seconds / 60)
    secs = math.floor(seconds % 60)
    return f"{mins}:{secs:02d}"


def format_time_detailed(seconds: float) -> str:
    """Formato h:mm:ss cuando hay al menos una hora, m:ss en otro caso."""
    hours = math.floor(seconds / 3600)
    mins = math.floor((seconds % 3600) / 60)
    secs = math.floor(seconds % 60)
    if hours > 0:
        return f"{hours}:{mins:02d}:{secs:02d}"
    return f"{mins}:{secs:02d}"


def to_pairs(intervals: Iterable[Sequence[float]]) -> List[List[float]]:
    """Representación de almacenamiento: [[start, end], ...]."""
    return [[start, end] for start, end in intervals]


def from_pairs(pairs: Optional[Iterable]) -> List[Interval]:
    """
    Lee pares persistidos. Entradas que no sean exactamente dos números se
    ignoran; el resultado no está fusionado, pásalo por merge_all.
    """
    intervals: List[Interval] = []
    for pair in pairs or []:
        if (
            not isinstance(pair, (list, tuple))
            or len(pair) != 2
            or not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in pair)
        ):
            logger.debug(f"Par persistido ignorado: {pair!r}")
            continue
        intervals.append(Interval(pair[0], pair[1]))
    return intervals
