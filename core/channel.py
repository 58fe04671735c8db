"""
Canal line-delimited sobre los pipes stdin/stdout de un proceso MCP.

Un intercambio = una línea escrita + una línea leída. El canal no
sincroniza nada por sí mismo: quien lo usa (McpSession) debe garantizar
que solo haya un intercambio en vuelo.
"""

import asyncio

from .errors import TransportReadError, TransportWriteError
from .schemas import McpRequest, McpResponse


class LineChannel:
    """Transporte request/response sobre un par StreamWriter/StreamReader."""

    def __init__(self, writer: asyncio.StreamWriter, reader: asyncio.StreamReader):
        self._writer = writer
        self._reader = reader

    async def send(self, request: McpRequest) -> McpResponse:
        """
        Escribe el request como una línea JSON y espera exactamente una línea de respuesta.

        Raises:
            TransportWriteError: stdin cerrado o pipe roto.
            TransportReadError: EOF antes del newline o línea demasiado larga.
            ProtocolDecodeError: la línea no es un objeto JSON.
        """
        await self._write_line(request.to_line())
        line = await self._read_line()
        return McpResponse.from_line(line)

    async def _write_line(self, data: bytes) -> None:
        # Un transport cerrado descarta write() en silencio; hay que comprobarlo antes
        if self._writer.is_closing():
            raise TransportWriteError("failed to write request: stdin is closed")
        try:
            self._writer.write(data)
            await self._writer.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise TransportWriteError(f"failed to write request: {exc}") from exc

    async def _read_line(self) -> bytes:
        try:
            line = await self._reader.readline()
        except ValueError as exc:
            # asyncio convierte LimitOverrunError en ValueError
            raise TransportReadError(f"failed to read response: {exc}") from exc
        except (ConnectionResetError, BrokenPipeError) as exc:
            raise TransportReadError(f"failed to read response: {exc}") from exc

        if not line.endswith(b"\n"):
            raise TransportReadError(
                "failed to read response: stream closed before end of line"
            )
        return line
