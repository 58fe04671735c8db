"""
Modelos de datos para la API.
Define los schemas de response usando Pydantic. Los envelopes JSON-RPC
viven en core.schemas porque también los usa el canal.
"""

from typing import List, Optional
from pydantic import BaseModel, Field


# ============================================================================
# RESPONSE MODELS
# ============================================================================

class SessionInfo(BaseModel):
    """Estado de una sesión MCP registrada."""

    session_id: str = Field(..., description="Key de la sesión (header X-Session-ID)")
    pid: Optional[int] = Field(None, description="PID del proceso MCP")
    alive: bool = Field(..., description="Si el proceso sigue corriendo")
    closed: bool = Field(..., description="Si la sesión ya fue cerrada")
    age_seconds: float = Field(..., description="Segundos desde la creación")
    idle_seconds: float = Field(..., description="Segundos desde el último intercambio")
    exchanges: int = Field(..., description="Intercambios realizados")
    pending: int = Field(..., description="Requests esperando el lock de la sesión")


class StatsResponse(BaseModel):
    """Response del endpoint /stats."""

    service: str = Field(..., description="Nombre del servicio")
    trace_id: str = Field(..., description="Trace ID del request actual")
    active_sessions: int = Field(..., description="Sesiones registradas")
    creating: int = Field(..., description="Sesiones en creación")
    ttl_seconds: float = Field(..., description="Vida de una sesión")
    sliding: bool = Field(..., description="Si la vida se renueva con el uso")
    sessions: List[SessionInfo] = Field(default_factory=list)
