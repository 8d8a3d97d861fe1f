# session.py -- Live sessions keyed by transport connection id
# One coarse lock guards membership and display names, so snapshots never see
# a half-built Session or a name mid-change.

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

log = logging.getLogger(__name__)


class RegistryError(Exception):
    """Registry misuse. Means the transport broke its connect/disconnect contract."""


class UnknownConnection(RegistryError):
    pass


class DuplicateConnection(RegistryError):
    pass


@dataclass
class Session:
    connection_id: str
    display_name: str = ""

    @property
    def registered(self) -> bool:
        return bool(self.display_name)


class SessionRegistry:
    def __init__(self) -> None:
        # dicts keep insertion order, which gives the roster its order
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, connection_id: object) -> bool:
        with self._lock:
            return connection_id in self._sessions

    def add(self, connection_id: str) -> Session:
        with self._lock:
            if connection_id in self._sessions:
                raise DuplicateConnection(connection_id)
            session = Session(connection_id)
            self._sessions[connection_id] = session
            total = len(self._sessions)
        log.debug("Session %s added (%d total)", connection_id, total)
        return session

    def remove(self, connection_id: str) -> Session:
        with self._lock:
            session = self._sessions.pop(connection_id, None)
            total = len(self._sessions)
        if session is None:
            raise UnknownConnection(connection_id)
        log.debug("Session %s removed (%d total)", connection_id, total)
        return session

    def lookup(self, connection_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(connection_id)
        if session is None:
            raise UnknownConnection(connection_id)
        return session

    def display_name(self, connection_id: str) -> str:
        """Read a session's current name under the lock."""
        with self._lock:
            session = self._sessions.get(connection_id)
            if session is None:
                raise UnknownConnection(connection_id)
            return session.display_name

    def rename(self, connection_id: str, name: str) -> str:
        """Set a session's display name. Returns the previous name."""
        with self._lock:
            session = self._sessions.get(connection_id)
            if session is None:
                raise UnknownConnection(connection_id)
            old = session.display_name
            session.display_name = name
        return old

    def snapshot_all(self) -> list[Session]:
        """Point-in-time copies; safe to iterate while the registry changes."""
        with self._lock:
            return [Session(s.connection_id, s.display_name) for s in self._sessions.values()]

    def roster_names(self) -> list[str]:
        return [s.display_name for s in self.snapshot_all() if s.display_name]
