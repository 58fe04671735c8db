"""
Envelopes JSON-RPC intercambiados con el proceso MCP.

El bridge no interpreta el contenido: solo garantiza la forma del envelope y
que los miembros viajen tal cual. Se serializa con exclude_unset para que un
`id` ausente siga ausente y un `id: null` explícito siga siendo null.
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, ValidationError

from .errors import ProtocolDecodeError, RequestDecodeError


# Strict: un id `true` no debe convertirse en 1
JsonRpcId = Optional[Union[StrictInt, StrictFloat, StrictStr]]


# ============================================================================
# REQUEST
# ============================================================================
class McpRequest(BaseModel):
    """Request JSON-RPC enviado al proceso MCP."""

    model_config = ConfigDict(extra="allow")

    jsonrpc: str = Field(..., description="Versión del protocolo JSON-RPC")
    id: JsonRpcId = Field(None, description="Token de correlación, se reenvía sin tocar")
    method: str = Field(..., description="Método JSON-RPC")
    params: Any = Field(None, description="Parámetros opacos")

    @classmethod
    def from_http_body(cls, body: bytes) -> "McpRequest":
        """Decodifica el body HTTP; RequestDecodeError si no es válido."""
        try:
            return cls.model_validate_json(body)
        except ValidationError as exc:
            raise RequestDecodeError(_describe_validation_error(exc)) from exc

    def to_line(self) -> bytes:
        """JSON compacto terminado en newline, listo para stdin."""
        return self.model_dump_json(exclude_unset=True).encode("utf-8") + b"\n"


# ============================================================================
# RESPONSE
# ============================================================================
class McpResponse(BaseModel):
    """Response JSON-RPC recibido del proceso MCP. Exactamente uno de result/error."""

    model_config = ConfigDict(extra="allow")

    jsonrpc: Optional[str] = None
    id: Any = None
    result: Any = None
    error: Any = None

    @classmethod
    def from_line(cls, line: bytes) -> "McpResponse":
        """Decodifica una línea de stdout; ProtocolDecodeError si no es un objeto JSON."""
        try:
            return cls.model_validate_json(line.strip())
        except ValidationError as exc:
            raise ProtocolDecodeError(
                f"failed to decode response: {_describe_validation_error(exc)}"
            ) from exc

    def to_body(self) -> dict[str, Any]:
        """Miembros tal como los envió el proceso."""
        return self.model_dump(exclude_unset=True)


def _describe_validation_error(exc: ValidationError) -> str:
    errors = exc.errors(include_url=False)
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid value")
    return f"{location}: {message}" if location else message
