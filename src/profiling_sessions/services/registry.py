"""In-memory catalog of profiling sessions."""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Protocol
from uuid import UUID

from profiling_sessions.domain.errors import (
    DuplicateSession,
    InvalidTransition,
    SessionNotFound,
)
from profiling_sessions.domain.sessions import (
    ALLOWED_TRANSITIONS,
    Session,
    SessionFilter,
    SessionState,
)

logger = logging.getLogger(__name__)

SessionMutator = Callable[[Session], Session]


class SessionStore(Protocol):
    """Durable mirror of session snapshots for audit and restart recovery."""

    def save(self, session: Session) -> None:
        """Insert or update a session snapshot."""

    def load(self) -> list[Session]:
        """Return every stored session snapshot."""


@dataclass
class _Entry:
    session: Session
    lock: threading.Lock = field(default_factory=threading.Lock)


@dataclass
class SessionRegistry:
    """Authoritative store of sessions, keyed by id.

    `transition` is the only way to change a stored session. Each session has
    its own lock, so transitions on different sessions never wait on each
    other; the registry lock only guards the id map itself.
    """

    store: SessionStore | None = None
    _entries: dict[UUID, _Entry] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def insert(self, session: Session) -> None:
        """Add a new session; raise DuplicateSession if the id is taken."""
        session.check_invariants()
        entry = _Entry(session)
        with entry.lock:
            with self._lock:
                if session.id in self._entries:
                    raise DuplicateSession(f"session {session.id} already registered")
                self._entries[session.id] = entry
            self._mirror(session)

    def get(self, session_id: UUID) -> Session:
        """Return the current snapshot of a session."""
        return self._entry(session_id).session

    def restore(self) -> list[Session]:
        """Load snapshots from the store into an empty registry."""
        if self.store is None:
            return []
        restored: list[Session] = []
        for session in self.store.load():
            with self._lock:
                if session.id in self._entries:
                    continue
                self._entries[session.id] = _Entry(session)
            restored.append(session)
        return restored

    def transition(
        self,
        session_id: UUID,
        from_state: SessionState,
        to_state: SessionState,
        mutator: SessionMutator | None = None,
    ) -> Session:
        """Move a session from `from_state` to `to_state` atomically."""
        entry = self._entry(session_id)
        with entry.lock:
            current = entry.session
            if (
                current.state is not from_state
                or to_state not in ALLOWED_TRANSITIONS[from_state]
            ):
                raise InvalidTransition(session_id, current.state, from_state, to_state)
            updated = mutator(current) if mutator else current
            if updated.id != current.id or updated.owner != current.owner:
                raise ValueError("mutator may not change session identity")
            if updated.state is not current.state and updated.state is not to_state:
                raise ValueError("mutator may not choose a different target state")
            updated = _with_state(updated, to_state)
            updated.check_invariants()
            entry.session = updated
            self._mirror(updated)
        logger.info(
            "Session %s: %s -> %s", session_id, from_state.value, to_state.value
        )
        return updated

    def list(self, session_filter: SessionFilter | None = None) -> list[Session]:
        """Return matching sessions, newest first."""
        criteria = session_filter or SessionFilter()
        with self._lock:
            sessions = [entry.session for entry in self._entries.values()]
        matched = sorted(
            (session for session in sessions if criteria.matches(session)),
            key=lambda session: session.created_at,
            reverse=True,
        )
        if criteria.limit is not None:
            return matched[: criteria.limit]
        return matched

    def purge_older_than(self, retention: timedelta, now: datetime) -> int:
        """Drop terminal sessions that ended before `now - retention`."""
        cutoff = now - retention
        with self._lock:
            expired = [
                session_id
                for session_id, entry in self._entries.items()
                if entry.session.state.is_terminal
                and entry.session.ended_at is not None
                and entry.session.ended_at < cutoff
            ]
            for session_id in expired:
                del self._entries[session_id]
        if expired:
            logger.info("Purged %s sessions older than %s", len(expired), cutoff)
        return len(expired)

    def _entry(self, session_id: UUID) -> _Entry:
        with self._lock:
            entry = self._entries.get(session_id)
        if entry is None:
            raise SessionNotFound(session_id)
        return entry

    def _mirror(self, session: Session) -> None:
        if self.store is None:
            return
        try:
            self.store.save(session)
        except Exception:
            logger.exception(
                "Failed to mirror session snapshot", extra={"session_id": str(session.id)}
            )


def _with_state(session: Session, state: SessionState) -> Session:
    if session.state is state:
        return session
    return replace(session, state=state)
