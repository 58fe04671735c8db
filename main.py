"""
Punto de entrada principal del servicio FastAPI.
Inicializa la aplicación, el registro de sesiones MCP y registra las rutas.
"""

import re
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from config import LoggingConfig, ServiceConfig
from core import SessionRegistry, create_session_registry
from core.structured_logging import get_logger, set_request_context, setup_logging
from api import router

logger = get_logger(__name__)

_TRACEPARENT_RE = re.compile(r"^[0-9a-f]{2}-([0-9a-f]{32})-[0-9a-f]{16}-[0-9a-f]{2}$")


def _extract_trace_id(request: Request) -> str:
    """X-Request-ID, luego el trace-id de traceparent (W3C), luego uno nuevo."""
    request_id = request.headers.get("x-request-id", "").strip()
    if request_id:
        return request_id
    match = _TRACEPARENT_RE.match(request.headers.get("traceparent", "").strip().lower())
    if match:
        return match.group(1)
    return uuid.uuid4().hex


# ============================================================================
# FASTAPI APP
# ============================================================================
def create_app(registry: Optional[SessionRegistry] = None) -> FastAPI:
    """
    Crea la app con su propio registro de sesiones.

    Args:
        registry: Registro a usar; por defecto uno construido desde BridgeConfig.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(
            service=ServiceConfig.SERVICE_NAME,
            environment=LoggingConfig.ENVIRONMENT,
            log_level=LoggingConfig.LEVEL,
            log_file=LoggingConfig.FILE,
        )
        logger.info(
            "Starting MCP HTTP bridge",
            context={"host": ServiceConfig.HOST, "port": ServiceConfig.PORT},
        )
        try:
            yield
        finally:
            await app.state.registry.close_all()

    app = FastAPI(
        title="MCP HTTP Bridge",
        description="Expone servidores MCP stdio (JSON-RPC por líneas) sobre HTTP",
        version=ServiceConfig.APP_VERSION,
        lifespan=lifespan,
    )
    app.state.registry = registry if registry is not None else create_session_registry()

    @app.middleware("http")
    async def trace_context(request: Request, call_next):
        trace_id = _extract_trace_id(request)
        set_request_context(trace_id)
        response = await call_next(request)
        response.headers["X-Trace-ID"] = trace_id
        traceparent = request.headers.get("traceparent")
        if traceparent:
            response.headers["traceparent"] = traceparent
        return response

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        # Un fallo en un request nunca debe tumbar el servicio
        logger.exception(
            "Unhandled error while processing request",
            context={"path": request.url.path, "method": request.method},
        )
        return PlainTextResponse("Internal server error", status_code=500)

    # Registrar rutas
    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    """Arranca uvicorn con HOST/PORT del entorno."""
    import uvicorn
    uvicorn.run(
        "main:app",
        host=ServiceConfig.HOST,
        port=ServiceConfig.PORT,
    )


# ============================================================================
# MAIN (para desarrollo local)
# ============================================================================
if __name__ == "__main__":
    run()
