"""
McpSession: un proceso MCP con su canal line-delimited.

Responsabilidades:
- Lanzar el proceso con stdin/stdout/stderr en pipes propios
- Serializar los intercambios con un asyncio.Lock (un request en vuelo a la vez)
- Drenar stderr en una tarea supervisada y mandarlo al log
- Cerrar de forma idempotente: EOF en stdin, espera, terminate(), kill()
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Sequence

from config import BridgeConfig
from .channel import LineChannel
from .errors import (
    ProcessStartError,
    SessionClosedError,
    TransportTimeoutError,
)
from .schemas import McpRequest, McpResponse
from .structured_logging import get_logger, set_request_context

logger = get_logger(__name__)


class McpSession:
    """Sesión de un cliente: proceso MCP + canal + lock exclusivo."""

    def __init__(
        self,
        session_id: str,
        command: Optional[Sequence[str]] = None,
        *,
        exchange_timeout: Optional[float] = None,
        close_timeout: Optional[float] = None,
        stream_limit: Optional[int] = None,
    ):
        self.session_id = session_id
        self.command: List[str] = list(command or BridgeConfig.command_line())
        self.exchange_timeout = (
            BridgeConfig.EXCHANGE_TIMEOUT_SECONDS if exchange_timeout is None else exchange_timeout
        )
        self.close_timeout = (
            BridgeConfig.CLOSE_TIMEOUT_SECONDS if close_timeout is None else close_timeout
        )
        self.stream_limit = stream_limit or BridgeConfig.STREAM_LIMIT_BYTES

        self.created_at = time.monotonic()
        self.last_used_at = self.created_at

        self._process: Optional[asyncio.subprocess.Process] = None
        self._channel: Optional[LineChannel] = None
        self._stderr_task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self._close_task: Optional[asyncio.Task] = None
        self._closing = False
        self._closed = False

        self._exchanges = 0
        self._pending = 0

    # ------------------------------------------------------------------------
    # PROPIEDADES
    # ------------------------------------------------------------------------
    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode if self._process else None

    @property
    def is_alive(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def closed(self) -> bool:
        return self._closed

    def idle_seconds(self) -> float:
        return time.monotonic() - self.last_used_at

    # ------------------------------------------------------------------------
    # CICLO DE VIDA
    # ------------------------------------------------------------------------
    async def start(self) -> "McpSession":
        """
        Lanza el proceso MCP y la tarea que drena stderr.

        Raises:
            ProcessStartError: Si el ejecutable no existe o no se puede lanzar.
        """
        if self._process is not None:
            return self

        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=self.stream_limit,
            )
        except (OSError, ValueError) as exc:
            raise ProcessStartError(
                f"failed to start MCP server '{self.command[0]}': {exc}"
            ) from exc

        self._channel = LineChannel(self._process.stdin, self._process.stdout)
        self._stderr_task = asyncio.create_task(
            self._drain_stderr(),
            name=f"mcp-stderr-{self.session_id}",
        )

        logger.info(
            "MCP session started",
            context={"session_id": self.session_id, "pid": self._process.pid, "command": self.command},
        )
        return self

    async def exchange(
        self,
        request: McpRequest,
        timeout: Optional[float] = None,
    ) -> McpResponse:
        """
        Envía un request y espera su respuesta con el lock de la sesión tomado.

        El lock cubre escritura + lectura completas, y se libera en cualquier
        salida (incluidos errores y cancelación).

        Args:
            request: Envelope JSON-RPC a reenviar.
            timeout: Segundos para el round trip; None usa el de la sesión, 0 desactiva.

        Raises:
            SessionClosedError: La sesión ya fue cerrada.
            TransportWriteError / TransportReadError / ProtocolDecodeError: del canal.
            TransportTimeoutError: El proceso no respondió a tiempo.
        """
        timeout = self.exchange_timeout if timeout is None else timeout

        self._pending += 1
        waiting = True
        try:
            async with self._lock:
                self._pending -= 1
                waiting = False
                self._ensure_open()
                self.last_used_at = time.monotonic()
                try:
                    if timeout and timeout > 0:
                        return await asyncio.wait_for(self._channel.send(request), timeout=timeout)
                    return await self._channel.send(request)
                except asyncio.TimeoutError:
                    raise TransportTimeoutError(
                        f"MCP server did not respond within {timeout}s"
                    ) from None
                finally:
                    self._exchanges += 1
                    self.last_used_at = time.monotonic()
        finally:
            # Cancelado mientras esperaba el lock
            if waiting:
                self._pending -= 1

    async def close(self) -> None:
        """
        Cierra la sesión. Idempotente: llamadas repetidas o concurrentes
        esperan el mismo cierre.

        El cierre corre en su propia tarea; cancelar a quien llama a close()
        no interrumpe el reap del proceso. Si el cierre falla, la siguiente
        llamada lo reintenta.

        Un intercambio en vuelo recibe TransportReadError/TransportWriteError.
        """
        self._closing = True
        if self._closed:
            return
        if self._close_task is None or self._close_task.done():
            self._close_task = asyncio.create_task(
                self._teardown(),
                name=f"mcp-close-{self.session_id}",
            )
        await asyncio.shield(self._close_task)

    async def _teardown(self) -> None:
        if self._process is not None:
            await self._terminate_process()
        await self._stop_stderr_drain()
        self._closed = True

        logger.info(
            "MCP session closed",
            context={"session_id": self.session_id, "pid": self.pid, "returncode": self.returncode},
        )

    async def _terminate_process(self) -> None:
        process = self._process

        # EOF en stdin: un servidor MCP bien portado termina solo
        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()

        if await self._wait_for_exit(process):
            return

        logger.warning(
            "MCP server did not exit after stdin closed, terminating",
            context={"session_id": self.session_id, "pid": process.pid},
        )
        try:
            process.terminate()
        except ProcessLookupError:
            pass
        if await self._wait_for_exit(process):
            return

        logger.warning(
            "MCP server ignored SIGTERM, killing",
            context={"session_id": self.session_id, "pid": process.pid},
        )
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()

    async def _wait_for_exit(self, process: asyncio.subprocess.Process) -> bool:
        try:
            await asyncio.wait_for(process.wait(), timeout=self.close_timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def _ensure_open(self) -> None:
        if self._closing or self._closed:
            raise SessionClosedError(f"MCP session '{self.session_id}' is closed")
        if self._channel is None:
            raise SessionClosedError(f"MCP session '{self.session_id}' was never started")

    # ------------------------------------------------------------------------
    # STDERR
    # ------------------------------------------------------------------------
    async def _drain_stderr(self) -> None:
        """Reenvía stderr del proceso al log. No se interpreta como JSON-RPC."""
        set_request_context(trace_id=f"session:{self.session_id}", session_id=self.session_id)
        stream = self._process.stderr
        while True:
            try:
                line = await stream.readline()
            except ValueError:
                logger.warning("[MCP stderr] line exceeded stream limit, discarded")
                continue
            if not line:
                break
            logger.info(f"[MCP stderr] {line.decode('utf-8', errors='replace').rstrip()}")

    async def _stop_stderr_drain(self) -> None:
        task = self._stderr_task
        if task is None or task.done():
            return
        # Tras la salida del proceso stderr llega a EOF; si un nieto mantiene
        # el pipe abierto, se cancela
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self.close_timeout)
        except asyncio.TimeoutError:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ------------------------------------------------------------------------
    # ESTADÍSTICAS
    # ------------------------------------------------------------------------
    def describe(self) -> Dict[str, Any]:
        """Snapshot de la sesión para el endpoint /stats."""
        now = time.monotonic()
        return {
            "session_id": self.session_id,
            "pid": self.pid,
            "alive": self.is_alive,
            "closed": self._closed,
            "age_seconds": round(now - self.created_at, 3),
            "idle_seconds": round(now - self.last_used_at, 3),
            "exchanges": self._exchanges,
            "pending": self._pending,
        }
