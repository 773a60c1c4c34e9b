# MIDDLEWARE DE LOGGING DE PETICIONES
# Registra cada petición con su latencia y la etiqueta con un X-Request-ID

import time
import json
import uuid
import logging
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.v1.endpoints.metrics import api_requests_total, api_request_duration_seconds
from app.core.logging_config import log_api_request

logger = logging.getLogger('app.requests')


def generate_request_id() -> str:
    return f'req_{uuid.uuid4().hex[:12]}'


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = generate_request_id()
        request.state.request_id = request_id
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f'Unhandled error: {request.method} {request.url.path}',
                             extra={'request_id': request_id})
            response = Response(
                content=json.dumps({'error': 'Internal server error', 'request_id': request_id}),
                status_code=500,
                media_type='application/json'
            )

        elapsed = time.perf_counter() - start
        # Se agrupa por plantilla de ruta para no disparar la cardinalidad de las métricas
        route = request.scope.get('route')
        endpoint = getattr(route, 'path', request.url.path)

        api_requests_total.labels(method=request.method, endpoint=endpoint, status=response.status_code).inc()
        api_request_duration_seconds.labels(method=request.method, endpoint=endpoint).observe(elapsed)
        log_api_request(
            logger,
            request.method,
            endpoint,
            status_code=response.status_code,
            response_time_ms=int(elapsed * 1000),
            request_id=request_id,
        )

        response.headers['X-Request-ID'] = request_id
        return response
