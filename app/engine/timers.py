"""
Engine: timers.py
Rôle:
- Abstraction minimale d'ordonnanceur pour les fenêtres de réponse et les
  délais de reconnexion.
- `TimerHandle` garantit un déclenchement au plus une fois ; un `cancel()`
  après déclenchement (ou un double `cancel()`) est sans effet.

Intégrations:
- `ManualScheduler` : horloge pilotée à la main (tests du moteur).
- `app.services.scheduler.AsyncioScheduler` : tâches asyncio en production.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Protocol

ARMED = "armed"
FIRED = "fired"
CANCELLED = "cancelled"


class TimerHandle:
    def __init__(self, delay: float):
        self.delay = delay
        self.state = ARMED

    @property
    def active(self) -> bool:
        return self.state == ARMED

    def cancel(self) -> bool:
        if self.state != ARMED:
            return False
        self.state = CANCELLED
        self._on_cancel()
        return True

    def claim_fire(self) -> bool:
        """Passe à l'état déclenché ; False si déjà annulé ou déclenché."""
        if self.state != ARMED:
            return False
        self.state = FIRED
        return True

    def _on_cancel(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"TimerHandle(delay={self.delay}, state={self.state})"


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        ...


@dataclass
class _Scheduled:
    due: float
    seq: int
    handle: TimerHandle
    callback: Callable[[], None]


@dataclass
class ManualScheduler:
    """Ordonnanceur déterministe : le temps n'avance que via `advance()`."""
    now: float = 0.0
    _queue: List[_Scheduled] = field(default_factory=list)
    _seq: int = 0

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(delay)
        self._seq += 1
        self._queue.append(_Scheduled(self.now + delay, self._seq, handle, callback))
        return handle

    def pending(self) -> List[TimerHandle]:
        return [item.handle for item in self._queue if item.handle.active]

    def advance(self, seconds: float) -> int:
        """Avance l'horloge et exécute les timers échus, dans l'ordre. Retourne le nombre exécuté."""
        target = self.now + seconds
        fired = 0
        while True:
            due = sorted(
                (item for item in self._queue if item.due <= target),
                key=lambda item: (item.due, item.seq),
            )
            if not due:
                break
            item = due[0]
            self._queue.remove(item)
            self.now = item.due
            if item.handle.claim_fire():
                item.callback()
                fired += 1
        self.now = target
        return fired
