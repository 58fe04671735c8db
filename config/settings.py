"""
Configuración centralizada del servicio.
Todas las variables de entorno y constantes se definen aquí.
"""

import os
import shlex
from dotenv import load_dotenv

# Cargar variables de entorno
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# ============================================================================
# CONFIGURACIÓN DEL SERVICIO
# ============================================================================
class ServiceConfig:
    """Configuración general del servicio FastAPI."""

    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT") or "8080")

    SERVICE_NAME = "mcp-http-bridge"

    APP_VERSION = "0.1.0"


# ============================================================================
# CONFIGURACIÓN DEL BRIDGE MCP
# ============================================================================
class BridgeConfig:
    """Configuración de los procesos MCP y del registro de sesiones."""

    # Ejecutable MCP (se resuelve en el PATH) y argumentos extra
    COMMAND = os.getenv("MCP_COMMAND", "har-mcp")
    ARGS = shlex.split(os.getenv("MCP_ARGS", ""))

    # Header que selecciona la sesión y valor por defecto
    SESSION_HEADER = "X-Session-ID"
    DEFAULT_SESSION_ID = "default"

    # Vida de una sesión (segundos). Por defecto se cuenta desde la creación;
    # con SLIDING_TTL se cuenta desde el último uso.
    SESSION_TTL_SECONDS = float(os.getenv("MCP_SESSION_TTL_SECONDS", "1800"))
    SLIDING_TTL = _env_bool("MCP_SESSION_SLIDING_TTL", False)

    # Timeout de un round trip request/response (0 = sin timeout)
    EXCHANGE_TIMEOUT_SECONDS = float(os.getenv("MCP_EXCHANGE_TIMEOUT_SECONDS", "120"))

    # Si un timeout deja el pipe desincronizado, descartar la sesión
    CLOSE_SESSION_ON_TIMEOUT = _env_bool("MCP_CLOSE_SESSION_ON_TIMEOUT", True)

    # Espera antes de escalar a terminate()/kill() al cerrar
    CLOSE_TIMEOUT_SECONDS = float(os.getenv("MCP_CLOSE_TIMEOUT_SECONDS", "5"))

    # Límite de una línea en stdout/stderr (asyncio usa 64 KiB por defecto)
    STREAM_LIMIT_BYTES = int(os.getenv("MCP_STREAM_LIMIT_BYTES", str(8 * 1024 * 1024)))

    @classmethod
    def command_line(cls) -> list[str]:
        """Comando completo para lanzar el servidor MCP."""
        return [cls.COMMAND, *cls.ARGS]


# ============================================================================
# CONFIGURACIÓN DE LOGGING
# ============================================================================
class LoggingConfig:
    """Configuración del logging estructurado."""

    LEVEL = os.getenv("LOG_LEVEL", "INFO")
    FILE = os.getenv("LOG_FILE") or None
    ENVIRONMENT = os.getenv("ENVIRONMENT", "production")
