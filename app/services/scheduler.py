"""
Service: scheduler.py
Rôle:
- Ordonnanceur asyncio pour le moteur : chaque minuteur est une tâche
  `asyncio` (sleep puis callback), annulable.

Intégrations:
- Le callback s'exécute SOUS le verrou du salon (`asyncio.Lock`), puis
  `after_fire` (publication des vues) est attendu hors verrou.

Notes:
- Un handle annulé pendant que sa tâche attend le verrou ne déclenche jamais.
- Un `cancel()` appelé depuis le callback lui-même est sans effet (handle déjà
  passé à l'état « fired »), la tâche n'est donc pas interrompue en vol.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Set

from app.engine.errors import LogicFault
from app.engine.timers import TimerHandle

logger = logging.getLogger(__name__)


class AsyncioTimerHandle(TimerHandle):
    def __init__(self, delay: float):
        super().__init__(delay)
        self.task: Optional[asyncio.Task] = None

    def _on_cancel(self) -> None:
        if self.task is not None and not self.task.done():
            self.task.cancel()


@dataclass
class AsyncioScheduler:
    lock: asyncio.Lock
    after_fire: Optional[Callable[[], Awaitable[None]]] = None
    _handles: Set[AsyncioTimerHandle] = field(default_factory=set, init=False, repr=False)

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = AsyncioTimerHandle(delay)

        async def _runner():
            try:
                await asyncio.sleep(delay)
                async with self.lock:
                    if not handle.claim_fire():
                        return
                    try:
                        callback()
                    except LogicFault:
                        logger.exception("timer callback failed", extra={"delay": delay})
                        return
                if self.after_fire is not None:
                    await self.after_fire()
            except asyncio.CancelledError:
                return
            finally:
                self._handles.discard(handle)

        handle.task = asyncio.get_running_loop().create_task(_runner())
        self._handles.add(handle)
        return handle

    def pending(self) -> int:
        return sum(1 for h in self._handles if h.active)

    def cancel_all(self) -> int:
        """Annule tous les minuteurs encore armés (fermeture du salon)."""
        cancelled = 0
        for handle in list(self._handles):
            if handle.cancel():
                cancelled += 1
        self._handles.clear()
        return cancelled
