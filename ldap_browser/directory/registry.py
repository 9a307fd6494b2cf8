"""Named directory sessions of one user context, and the per-context store.

A SessionRegistry belongs to exactly one user context and is driven by that
context's requests; it is not meant for concurrent mutation. The
RegistryStore only guards its own context map.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Callable, Optional

from .errors import DirectoryError
from .models import ConnectionInfo, ConnectionSettings
from .session import DirectorySession

log = logging.getLogger(__name__)

SessionFactory = Callable[[], DirectorySession]


def _new_id() -> str:
    return uuid.uuid4().hex[:8]


class SessionRegistry:
    def __init__(self, session_factory: SessionFactory = DirectorySession) -> None:
        self._session_factory = session_factory
        self._sessions: dict[str, DirectorySession] = {}
        self._names: dict[str, str] = {}
        self.active_id: Optional[str] = None

    @property
    def active(self) -> Optional[DirectorySession]:
        if self.active_id is None:
            return None
        return self._sessions.get(self.active_id)

    @property
    def is_connected(self) -> bool:
        session = self.active
        return session is not None and session.is_connected

    @property
    def settings(self) -> Optional[ConnectionSettings]:
        session = self.active
        return session.settings if session is not None else None

    def get(self, session_id: str) -> Optional[DirectorySession]:
        return self._sessions.get(session_id)

    def add_connection(self, settings: ConnectionSettings) -> str:
        """Connect a new session and make it active. Connect errors propagate."""
        session = self._session_factory()
        session.connect(settings)

        session_id = _new_id()
        while session_id in self._sessions:
            session_id = _new_id()

        self._sessions[session_id] = session
        self._names[session_id] = settings.display_name
        self.active_id = session_id
        log.info("connection %s added (%s)", session_id, settings.display_name)
        return session_id

    def remove_connection(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        self._names.pop(session_id, None)
        session.disconnect()

        if self.active_id == session_id:
            self.active_id = next(iter(self._sessions), None)
        log.info("connection %s removed", session_id)

    def set_active(self, session_id: str) -> bool:
        if session_id not in self._sessions:
            return False
        self.active_id = session_id
        return True

    def get_all(self) -> list[ConnectionInfo]:
        return [
            ConnectionInfo(id=sid, name=self._names.get(sid, sid), is_active=(sid == self.active_id))
            for sid in self._sessions
        ]

    def try_reconnect(self, settings: ConnectionSettings | None) -> bool:
        """Reconnect from saved settings unless already connected.

        Failures are logged and reported as False.
        """
        if self.is_connected:
            return True
        if settings is None:
            return False
        try:
            self.add_connection(settings)
        except DirectoryError as e:
            log.warning("reconnect to %s failed: %s", settings.display_name, e)
            return False
        return True

    def close(self) -> None:
        for session in self._sessions.values():
            session.disconnect()
        self._sessions.clear()
        self._names.clear()
        self.active_id = None

    def __len__(self) -> int:
        return len(self._sessions)


class RegistryStore:
    """Session registries keyed by user context id.

    A context that has not been seen for max_idle_seconds is closed and
    forgotten on the next store access.
    """

    def __init__(
        self,
        registry_factory: Callable[[], SessionRegistry] = SessionRegistry,
        max_idle_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry_factory = registry_factory
        self._registries: dict[str, SessionRegistry] = {}
        self._last_seen: dict[str, float] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self.max_idle_seconds = max_idle_seconds

    def _evict_idle_locked(self) -> list[SessionRegistry]:
        if not self.max_idle_seconds:
            return []
        cutoff = self._clock() - self.max_idle_seconds
        stale = [cid for cid, seen in self._last_seen.items() if seen < cutoff]
        evicted = []
        for cid in stale:
            del self._last_seen[cid]
            evicted.append(self._registries.pop(cid))
        if stale:
            log.info("closing %d idle context(s)", len(stale))
        return evicted

    def _touch(self, context_id: str, create: bool) -> SessionRegistry | None:
        with self._lock:
            evicted = self._evict_idle_locked()
            reg = self._registries.get(context_id)
            if reg is None and create:
                reg = self._registry_factory()
                self._registries[context_id] = reg
            if reg is not None:
                self._last_seen[context_id] = self._clock()
        for old in evicted:
            old.close()
        return reg

    def get(self, context_id: str) -> SessionRegistry:
        """Registry of a context, created and stored on first use."""
        return self._touch(context_id, create=True)

    def peek(self, context_id: str) -> SessionRegistry:
        """Registry of a context, or an empty one that is not stored."""
        reg = self._touch(context_id, create=False)
        return reg if reg is not None else self._registry_factory()

    def drop(self, context_id: str) -> None:
        with self._lock:
            reg = self._registries.pop(context_id, None)
            self._last_seen.pop(context_id, None)
        if reg is not None:
            reg.close()

    def close(self) -> None:
        with self._lock:
            regs = list(self._registries.values())
            self._registries.clear()
            self._last_seen.clear()
        for reg in regs:
            reg.close()

    def __contains__(self, context_id: str) -> bool:
        return context_id in self._registries

    def __len__(self) -> int:
        return len(self._registries)
