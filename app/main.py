import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from app.core.logging_config import setup_logging

# Configurar logging ANTES de importar/crear otros elementos
setup_logging()

from app.api.v1.api import api_router
from app.core.config import get_settings
from app.core.errors import register_exception_handlers
from app.core.scheduler import init_scheduler, shutdown_scheduler
from app.create_tables import create_tables
from app.middleware.timing import TimingMiddleware

logger = logging.getLogger(__name__)

settings_instance = get_settings()

SENSITIVE_HEADERS = ("authorization", "cookie", "x-api-key")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Lifespan: Startup iniciado...")
    create_tables()

    if settings_instance.SCHEDULER_ENABLED:
        app.state.scheduler = init_scheduler()
        logger.info("Lifespan: Scheduler inicializado.")
    else:
        logger.info("Lifespan: Scheduler deshabilitado por configuración.")

    yield  # Aplicación en ejecución

    logger.info("Lifespan: Shutdown iniciado...")
    if getattr(app.state, "scheduler", None) is not None:
        shutdown_scheduler()
        app.state.scheduler = None


app = FastAPI(
    title=settings_instance.PROJECT_NAME,
    description=settings_instance.PROJECT_DESCRIPTION,
    version=settings_instance.VERSION,
    openapi_url=f"{settings_instance.API_V1_STR}/openapi.json",
    docs_url=f"{settings_instance.API_V1_STR}/docs",
    redoc_url=f"{settings_instance.API_V1_STR}/redoc",
    lifespan=lifespan,
)

register_exception_handlers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"Middleware: Recibida petición: {request.method} {request.url}")
    if settings_instance.DEBUG_MODE:
        # Sanitizar headers antes de loguear para evitar fuga de secretos
        headers_dict = dict(request.headers)
        for key in SENSITIVE_HEADERS:
            if key in headers_dict:
                headers_dict[key] = "***masked***"
        logger.debug(f"Middleware: Headers: {headers_dict}")

    response = await call_next(request)

    logger.info(f"Middleware: Enviando respuesta: {response.status_code}")
    return response


app.add_middleware(TimingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings_instance.BACKEND_CORS_ORIGINS or [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Process-Time"],
    max_age=86400,  # 24 horas en segundos
)

# Incluir routers
app.include_router(api_router, prefix=settings_instance.API_V1_STR)


# Ruta raíz
@app.get("/")
def root():
    return {
        "message": f"Bienvenido a {settings_instance.PROJECT_NAME}",
        "docs": f"{settings_instance.API_V1_STR}/docs",
    }


@app.get("/health")
def health():
    return {"status": "ok", "version": settings_instance.VERSION}


if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=settings_instance.DEBUG_MODE)
