# app/main.py
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from app.api.v1.endpoints import health, metrics, progress
from app.core.config import settings
from app.core.logging_config import setup_logging
from middleware.request_logging import RequestLoggingMiddleware
import logging

# Configurar logging al inicio de la aplicacion
setup_logging()
logger = logging.getLogger('app')

app = FastAPI(
    title='Watch Progress API',
    description='''
    ## Seguimiento de progreso de visualización de videos

    **Servicios Disponibles:**
    - **Progress**: Guarda y consulta los intervalos vistos por usuario y video
    - **Health Check**: Estado del servicio y de la base de datos
    - **Metrics**: Métricas en formato Prometheus

    Los intervalos se guardan siempre fusionados: ordenados, sin solapes y sin
    tramos que se toquen. El avance se deriva de ellos en cada consulta.
    ''',
    version='1.0.0',
    openapi_url='/openapi.json',
    docs_url='/docs',
    redoc_url='/redoc'
)

logger.info('Watch Progress API starting up')

# Configurar CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['GET', 'POST', 'PATCH', 'DELETE', 'OPTIONS'],
    allow_headers=['*'],
)

app.add_middleware(RequestLoggingMiddleware)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Sin "input": un Infinity o NaN rechazado no se puede volver a serializar como JSON
    errors = [
        {"loc": error.get("loc"), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(errors)},
    )

# Incluir rutas
app.include_router(health.router, prefix='/api/v1', tags=['Health Check'])
app.include_router(progress.router, prefix='/api/v1', tags=['Video Progress'])
app.include_router(metrics.router, tags=['Metrics'])

@app.get('/')
async def root():
    return {
        'message': 'Watch Progress API',
        'status': 'operativo',
        'version': '1.0.0',
        'docs': '/docs',
        'available_services': ['health', 'progress', 'metrics'],
        'progress_endpoint': '/api/v1/progress/{user_id}/{video_id}'
    }

if __name__ == '__main__':
    import uvicorn
    uvicorn.run(app, host='0.0.0.0', port=8000)
