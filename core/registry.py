"""
SessionRegistry: mapa session_id -> McpSession.

- Crea sesiones de forma perezosa en el primer request de cada key
- Get-or-create atómico por key: los llamadores concurrentes de una key
  nueva esperan la misma creación (un solo proceso por key)
- Una tarea de expiración por sesión. Por defecto la vida se cuenta desde
  la creación y NO se renueva con el uso; con sliding=True se cuenta desde
  el último intercambio.
"""

import asyncio
import time
from typing import Any, Callable, Dict, Optional, Set

from config import BridgeConfig
from .errors import ProcessStartError
from .session import McpSession
from .structured_logging import get_logger, set_request_context

logger = get_logger(__name__)

SessionFactory = Callable[[str], McpSession]


def default_session_factory(session_id: str) -> McpSession:
    """Sesión con el comando y timeouts de BridgeConfig."""
    return McpSession(session_id)


class SessionRegistry:
    """Registro concurrente de sesiones MCP con expiración."""

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        *,
        ttl_seconds: Optional[float] = None,
        sliding: Optional[bool] = None,
    ):
        self._session_factory = session_factory or default_session_factory
        self.ttl_seconds = BridgeConfig.SESSION_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.sliding = BridgeConfig.SLIDING_TTL if sliding is None else sliding

        self._sessions: Dict[str, McpSession] = {}
        self._creating: Dict[str, asyncio.Future] = {}
        self._expiry_tasks: Dict[str, asyncio.Task] = {}
        # Sesiones fuera del mapa cuyo cierre sigue en curso
        self._retiring: Set[McpSession] = set()
        self._shut_down = False

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Optional[McpSession]:
        return self._sessions.get(session_id)

    # ========================================================================
    # GET-OR-CREATE
    # ========================================================================
    async def resolve(self, session_id: str) -> McpSession:
        """
        Retorna la sesión registrada para la key o la crea.

        No hay await entre la comprobación y el registro de la creación en
        curso, así que dos llamadores concurrentes nunca lanzan dos procesos.

        Raises:
            ProcessStartError: Si el proceso no arranca o el registro ya se
                está apagando. No se registra nada.
        """
        session = self._sessions.get(session_id)
        if session is not None:
            return session

        pending = self._creating.get(session_id)
        if pending is not None:
            # shield: cancelar a un llamador no cancela la creación compartida
            return await asyncio.shield(pending)

        if self._shut_down:
            raise ProcessStartError("session registry is shut down")

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._creating[session_id] = future
        try:
            session = await self._session_factory(session_id).start()
            if self._shut_down:
                # close_all() empezó mientras arrancaba: no se registra
                await self._retire(session)
                raise ProcessStartError("session registry is shut down")
        except BaseException as exc:
            if isinstance(exc, Exception):
                future.set_exception(exc)
                # Marca la excepción como recuperada si nadie más esperaba
                future.exception()
            else:
                future.cancel()
            raise
        finally:
            self._creating.pop(session_id, None)

        self._sessions[session_id] = session
        self._expiry_tasks[session_id] = asyncio.create_task(
            self._expire(session_id, session),
            name=f"mcp-expiry-{session_id}",
        )
        future.set_result(session)

        logger.info(
            "Session registered",
            context={
                "session_id": session_id,
                "ttl_seconds": self.ttl_seconds,
                "sliding": self.sliding,
                "active_sessions": len(self._sessions),
            },
        )
        return session

    # ========================================================================
    # EXPIRACIÓN Y CIERRE
    # ========================================================================
    async def _expire(self, session_id: str, session: McpSession) -> None:
        set_request_context(trace_id=f"expiry:{session_id}", session_id=session_id)

        deadline = session.created_at + self.ttl_seconds
        while True:
            await asyncio.sleep(max(0.0, deadline - time.monotonic()))
            if not self.sliding:
                break
            deadline = session.last_used_at + self.ttl_seconds
            if deadline <= time.monotonic():
                break

        # Primero se quita del mapa, después se cierra
        if self._sessions.get(session_id) is session:
            del self._sessions[session_id]
        if self._expiry_tasks.get(session_id) is asyncio.current_task():
            del self._expiry_tasks[session_id]

        logger.info(
            "Session expired, closing",
            context={"session_id": session_id, "idle_seconds": round(session.idle_seconds(), 3)},
        )
        await self._retire(session)

    async def discard(self, session_id: str, session: Optional[McpSession] = None) -> bool:
        """
        Quita y cierra la sesión ahora.

        Si se pasa `session`, solo se descarta cuando la key sigue apuntando
        a esa misma instancia.

        Returns:
            True si se quitó una sesión del registro.
        """
        current = self._sessions.get(session_id)
        if current is None or (session is not None and current is not session):
            return False

        del self._sessions[session_id]
        task = self._expiry_tasks.pop(session_id, None)
        if task is not None:
            task.cancel()

        logger.info("Session discarded", context={"session_id": session_id})
        await self._retire(current)
        return True

    async def close_all(self) -> None:
        """
        Cierra todas las sesiones. Se usa al apagar el servicio.

        Después de llamarlo el registro no crea sesiones nuevas: las
        creaciones en curso se esperan y su proceso se cierra sin registrarlo.
        """
        self._shut_down = True

        creating = list(self._creating.values())
        if creating:
            await asyncio.gather(*(asyncio.shield(f) for f in creating), return_exceptions=True)

        tasks = list(self._expiry_tasks.values())
        sessions = list(self._sessions.values()) + list(self._retiring)
        self._expiry_tasks.clear()
        self._sessions.clear()

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        # close() es idempotente: las que ya se estaban cerrando esperan ese cierre
        await asyncio.gather(*(self._close_quietly(s) for s in sessions))

        if sessions:
            logger.info("All sessions closed", context={"count": len(sessions)})

    async def _retire(self, session: McpSession) -> None:
        self._retiring.add(session)
        try:
            await self._close_quietly(session)
        finally:
            self._retiring.discard(session)

    @staticmethod
    async def _close_quietly(session: McpSession) -> None:
        try:
            await session.close()
        except Exception:
            logger.exception(
                "Failed to close MCP session",
                context={"session_id": session.session_id},
            )

    # ========================================================================
    # ESTADÍSTICAS
    # ========================================================================
    def stats(self) -> Dict[str, Any]:
        """
        Retorna el estado actual del registro.

        Returns:
            dict con:
            - active_sessions: Sesiones registradas
            - creating: Creaciones en curso
            - ttl_seconds / sliding: Política de expiración
            - sessions: describe() de cada sesión
        """
        return {
            "active_sessions": len(self._sessions),
            "creating": len(self._creating),
            "ttl_seconds": self.ttl_seconds,
            "sliding": self.sliding,
            "sessions": [s.describe() for s in self._sessions.values()],
        }
