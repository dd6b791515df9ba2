# broadcast.py
# Vaultline – Store subsystem: cache-invalidation notifications

import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

BROADCAST_TYPES = ("rekey", "reset", "write")


@dataclass(frozen=True)
class Broadcast:
    """
    A cache-invalidation signal. Carries no data beyond what was touched.

    - rekey: the store was claimed or wiped; `clear` holds the marker of a
      wiped store so holders of that secret can drop it
    - reset: a provider was removed
    - write: `provider` committed a new index
    """
    type: str
    provider: Optional[str] = None
    clear: Optional[str] = None

    def __post_init__(self):
        if self.type not in BROADCAST_TYPES:
            raise ValueError(f"Unknown broadcast type: {self.type}")


Subscriber = Callable[[Broadcast], None]


class Broadcaster:
    """In-process publish/subscribe bus shared by every view of one store."""

    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, fn: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(fn)

        def unsubscribe():
            with self._lock:
                if fn in self._subscribers:
                    self._subscribers.remove(fn)

        return unsubscribe

    def publish(self, message: Broadcast) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for fn in subscribers:
            fn(message)
