from fastapi import APIRouter, Response
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
import time

router = APIRouter()

# Métricas de Prometheus para el API
api_requests_total = Counter(
    'watch_progress_api_requests_total',
    'Total progress API requests',
    ['method', 'endpoint', 'status']
)

api_request_duration_seconds = Histogram(
    'watch_progress_api_request_duration_seconds',
    'Progress API request duration in seconds',
    ['method', 'endpoint']
)

progress_operations_total = Counter(
    'watch_progress_operations_total',
    'Total video progress storage operations',
    ['operation', 'status']
)

stored_interval_count = Histogram(
    'watch_progress_stored_intervals',
    'Number of merged intervals per stored progress record',
    buckets=(0, 1, 2, 5, 10, 25, 50, 100, 250, 500)
)

# Métricas del sistema
uptime_seconds = Gauge(
    'watch_progress_uptime_seconds',
    'Service uptime in seconds'
)

start_time = time.time()

@router.get("/metrics", include_in_schema=False)
def get_metrics():
    """
    Endpoint de métricas para Prometheus.
    No incluido en la documentación de la API.
    """
    uptime_seconds.set(time.time() - start_time)

    return Response(
        generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
