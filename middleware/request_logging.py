# MIDDLEWARE DE LOGGING DE PETICIONES
# Asigna un request_id a cada petición y registra método, ruta, estado y tiempo de respuesta

import time
import json
import uuid
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
import logging

from app.core.logging_config import log_api_request
from app.core.metrics import exam_portal_requests_total, exam_portal_request_duration_seconds

logger = logging.getLogger('app.api.requests')


def generate_request_id() -> str:
    return f'req_{uuid.uuid4().hex[:12]}'


def _route_template(request: Request) -> str:
    # Plantilla de la ruta (/attempts/{attempt_id}) para no disparar la cardinalidad de métricas
    route = request.scope.get('route')
    return getattr(route, 'path', request.url.path)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get('X-Request-ID') or generate_request_id()
        request.state.request_id = request_id
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                f'Unhandled error on {request.method} {request.url.path}',
                exc_info=True,
                extra={'request_id': request_id},
            )
            response = Response(
                content=json.dumps({
                    'success': False,
                    'error': 'INTERNAL',
                    'message': 'Internal server error',
                    'request_id': request_id,
                }),
                status_code=500,
                media_type='application/json'
            )

        elapsed = time.perf_counter() - start
        endpoint = _route_template(request)
        exam_portal_requests_total.labels(
            method=request.method, endpoint=endpoint, status=str(response.status_code)
        ).inc()
        exam_portal_request_duration_seconds.labels(method=request.method, endpoint=endpoint).observe(elapsed)

        log_api_request(
            logger,
            method=request.method,
            endpoint=request.url.path,
            status_code=response.status_code,
            response_time_ms=int(elapsed * 1000),
            request_id=request_id,
        )

        response.headers['X-Request-ID'] = request_id
        return response
