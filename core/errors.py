"""
Excepciones del bridge MCP.

Ninguna se reintenta internamente: todas suben hasta el gateway HTTP,
que las registra y las traduce a un status code.
"""


class BridgeError(Exception):
    """Base de todos los errores del bridge."""
    pass


# ============================================================================
# CICLO DE VIDA DEL PROCESO
# ============================================================================
class ProcessStartError(BridgeError):
    """El ejecutable MCP no existe o no se pudo lanzar."""
    pass


# ============================================================================
# TRANSPORTE (PIPES STDIN/STDOUT)
# ============================================================================
class TransportError(BridgeError):
    """Fallo de I/O sobre los pipes del proceso MCP."""
    pass


class TransportWriteError(TransportError):
    """No se pudo escribir el request (pipe roto o proceso terminado)."""
    pass


class SessionClosedError(TransportWriteError):
    """La sesión ya fue cerrada y no acepta más intercambios."""
    pass


class TransportReadError(TransportError):
    """No se pudo leer una línea completa de respuesta."""
    pass


class TransportTimeoutError(TransportError):
    """
    El proceso no respondió dentro del timeout.

    El pipe puede quedar con una respuesta tardía pendiente, así que la
    sesión ya no es confiable; el llamador decide si descartarla.
    """
    pass


# ============================================================================
# DECODIFICACIÓN
# ============================================================================
class ProtocolDecodeError(BridgeError):
    """La línea recibida del proceso no es un objeto JSON válido."""
    pass


class RequestDecodeError(BridgeError):
    """El body HTTP entrante no es un request JSON-RPC válido."""
    pass
