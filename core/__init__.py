"""
Módulo core del servicio.
Contiene el ciclo de vida de las sesiones MCP y el transporte line-delimited.
"""

from .errors import (
    BridgeError,
    ProcessStartError,
    TransportError,
    TransportWriteError,
    SessionClosedError,
    TransportReadError,
    TransportTimeoutError,
    ProtocolDecodeError,
    RequestDecodeError,
)
from .schemas import McpRequest, McpResponse
from .channel import LineChannel
from .session import McpSession
from .registry import SessionRegistry
from .runtime import create_session_registry

__all__ = [
    "BridgeError",
    "ProcessStartError",
    "TransportError",
    "TransportWriteError",
    "SessionClosedError",
    "TransportReadError",
    "TransportTimeoutError",
    "ProtocolDecodeError",
    "RequestDecodeError",
    "McpRequest",
    "McpResponse",
    "LineChannel",
    "McpSession",
    "SessionRegistry",
    "create_session_registry",
]
