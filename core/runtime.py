"""
Runtime del bridge: construye el registro de sesiones desde la configuración.

El registro no es un global del módulo: cada app (y cada test) crea el suyo.
"""

from typing import Optional, Sequence

from config import BridgeConfig
from .registry import SessionRegistry
from .session import McpSession


def create_session_registry(
    command: Optional[Sequence[str]] = None,
    *,
    ttl_seconds: Optional[float] = None,
    sliding: Optional[bool] = None,
    exchange_timeout: Optional[float] = None,
) -> SessionRegistry:
    """
    Crea un SessionRegistry cuyas sesiones lanzan `command`.

    Los parámetros omitidos toman su valor de BridgeConfig.
    """
    command_line = list(command) if command else BridgeConfig.command_line()

    def session_factory(session_id: str) -> McpSession:
        return McpSession(
            session_id,
            command_line,
            exchange_timeout=exchange_timeout,
        )

    return SessionRegistry(
        session_factory,
        ttl_seconds=ttl_seconds,
        sliding=sliding,
    )
