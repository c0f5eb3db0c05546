import time
from typing import Dict

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp
import logging

logger = logging.getLogger("timing_middleware")


class TimingMiddleware(BaseHTTPMiddleware):
    """
    Middleware que mide el tiempo de respuesta de cada solicitud y lo añade
    en cabeceras de diagnóstico. Las peticiones lentas se registran en el log.
    """

    def __init__(self, app: ASGIApp, slow_threshold_ms: float = 700):
        super().__init__(app)
        self.slow_threshold_ms = slow_threshold_ms
        # Estadísticas de los endpoints lentos
        self.endpoint_stats: Dict[str, Dict[str, float]] = {}

    def _speed_category(self, process_time: float) -> str:
        if process_time > 1500:
            return "VERY_SLOW"
        if process_time > self.slow_threshold_ms:
            return "SLOW"
        if process_time > 300:
            return "MEDIUM"
        return "FAST"

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start_time = time.perf_counter()
        method = request.method
        path = request.url.path

        response = await call_next(request)

        process_time = (time.perf_counter() - start_time) * 1000  # En milisegundos
        speed_category = self._speed_category(process_time)

        if process_time > self.slow_threshold_ms:
            endpoint_key = f"{method}:{path}"
            stats = self.endpoint_stats.setdefault(
                endpoint_key, {"count": 0, "total_time": 0.0, "max_time": 0.0}
            )
            stats["count"] += 1
            stats["total_time"] += process_time
            stats["max_time"] = max(stats["max_time"], process_time)
            logger.warning(
                f"Petición lenta {endpoint_key}: {process_time:.2f}ms "
                f"(media {stats['total_time'] / stats['count']:.2f}ms en {int(stats['count'])} peticiones)"
            )

        response.headers["X-Process-Time"] = f"{process_time:.2f}ms"
        response.headers["X-Process-Speed"] = speed_category
        return response
