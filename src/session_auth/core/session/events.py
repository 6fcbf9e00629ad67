"""Session change notifications.

Subscribers receive the new Session value on every real transition, in the
order they subscribed. A subscriber that raises is logged and skipped; the
publisher never sees the exception.
"""

import logging
from typing import Callable, Optional

from session_auth.domain.models import Session

logger = logging.getLogger(__name__)

SessionListener = Callable[[Session], None]


class Subscription:
    """Handle returned by ``subscribe``; ``cancel()`` is idempotent."""

    def __init__(self, on_cancel: Callable[[], None]):
        self._on_cancel: Optional[Callable[[], None]] = on_cancel

    @property
    def active(self) -> bool:
        return self._on_cancel is not None

    def cancel(self) -> None:
        if self._on_cancel is not None:
            on_cancel, self._on_cancel = self._on_cancel, None
            on_cancel()


class SessionEventBus:
    """Ordered, de-duplicating publish/subscribe for Session values"""

    def __init__(self, initial: Optional[Session] = None):
        self._listeners: list[tuple[int, SessionListener]] = []
        self._next_id = 0
        self._last: Optional[Session] = initial

    def subscribe(self, listener: SessionListener) -> Subscription:
        """Register a listener for future session changes.

        Args:
            listener: Called with each new Session

        Returns:
            Subscription that removes the listener when cancelled
        """
        listener_id = self._next_id
        self._next_id += 1
        self._listeners.append((listener_id, listener))
        return Subscription(lambda: self._remove(listener_id))

    def publish(self, session: Session) -> bool:
        """Deliver ``session`` to every listener unless it equals the last one.

        Returns:
            True if the session was delivered
        """
        if self._last is not None and session == self._last:
            return False
        self._last = session

        # Snapshot so listeners may (un)subscribe while being notified
        for _, listener in list(self._listeners):
            try:
                listener(session)
            except Exception:
                logger.exception(f"Session listener {listener!r} failed")
        return True

    def _remove(self, listener_id: int) -> None:
        self._listeners = [(i, l) for i, l in self._listeners if i != listener_id]

    def __len__(self) -> int:
        return len(self._listeners)
