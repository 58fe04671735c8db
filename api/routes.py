"""
Definición de rutas de la API FastAPI.
Contiene los endpoints del bridge: /mcp, /health y /stats.
"""

from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from config import BridgeConfig, ServiceConfig
from core import (
    BridgeError,
    McpRequest,
    ProcessStartError,
    RequestDecodeError,
    SessionRegistry,
    TransportTimeoutError,
)
from core.structured_logging import get_logger, get_trace_id, set_session_id
from .models import StatsResponse

logger = get_logger(__name__)


# ============================================================================
# ROUTER
# ============================================================================
router = APIRouter()


def get_registry(request: Request) -> SessionRegistry:
    """Registro de sesiones de la app que atiende el request."""
    return request.app.state.registry


# ============================================================================
# ENDPOINT: POST /mcp
# ============================================================================
@router.post("/mcp")
async def forward_mcp_request(
    request: Request,
    x_session_id: Optional[str] = Header(default=None, alias=BridgeConfig.SESSION_HEADER),
):
    """
    Reenvía un request JSON-RPC al proceso MCP de la sesión.

    La sesión se elige con el header X-Session-ID ("default" si falta) y se
    crea en el primer request. El body de la respuesta es el envelope que
    devolvió el proceso, sin modificar.

    Returns:
        200 con el envelope JSON-RPC de respuesta
        400 si el body no es JSON válido (no se toca el registro)
        500 si la sesión no arranca o el intercambio falla
    """
    session_id = (x_session_id or "").strip() or BridgeConfig.DEFAULT_SESSION_ID
    set_session_id(session_id)

    try:
        mcp_request = McpRequest.from_http_body(await request.body())
    except RequestDecodeError as e:
        raise HTTPException(status_code=400, detail=f"Invalid JSON: {e}")

    registry = get_registry(request)

    try:
        session = await registry.resolve(session_id)
    except ProcessStartError as e:
        logger.error("Failed to create session", context={"error": str(e)})
        raise HTTPException(status_code=500, detail=f"Failed to create MCP session: {e}")

    try:
        response = await session.exchange(mcp_request)
    except TransportTimeoutError as e:
        logger.error("MCP request timed out", context={"method": mcp_request.method, "error": str(e)})
        if BridgeConfig.CLOSE_SESSION_ON_TIMEOUT:
            await registry.discard(session_id, session)
        raise HTTPException(status_code=500, detail=f"MCP request failed: {e}")
    except BridgeError as e:
        logger.error(
            "MCP request failed",
            context={"method": mcp_request.method, "error_type": type(e).__name__, "error": str(e)},
        )
        raise HTTPException(status_code=500, detail=f"MCP request failed: {e}")

    return JSONResponse(content=response.to_body())


# ============================================================================
# ENDPOINT: * /health
# ============================================================================
@router.api_route("/health", methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
async def health_check():
    """Endpoint de salud del servicio. No toca las sesiones."""
    return PlainTextResponse("OK")


# ============================================================================
# ENDPOINT: GET /stats
# ============================================================================
@router.get("/stats", response_model=StatsResponse)
async def registry_stats(request: Request):
    """Estado del registro de sesiones."""
    return StatsResponse(
        service=ServiceConfig.SERVICE_NAME,
        trace_id=get_trace_id(),
        **get_registry(request).stats(),
    )
