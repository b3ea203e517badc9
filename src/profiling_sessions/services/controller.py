"""Session lifecycle orchestration."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from uuid import UUID, uuid4

from profiling_sessions.domain.errors import (
    ArtifactStoreError,
    EngineStopFailed,
    EngineUnavailable,
    InvalidState,
    InvalidTransition,
    SessionNotFound,
    Unauthorized,
)
from profiling_sessions.domain.sessions import (
    ArtifactRef,
    RecordingConfig,
    Session,
    SessionFilter,
    SessionState,
)
from profiling_sessions.services.access import LIST, READ, START, STOP, AccessPolicy
from profiling_sessions.services.artifacts import ArtifactStore
from profiling_sessions.services.engine import ProfilingEngineAdapter
from profiling_sessions.services.governor import Clock, Permit, ResourceGovernor, utc_now
from profiling_sessions.services.naming import ArtifactNamer
from profiling_sessions.services.registry import SessionMutator, SessionRegistry

logger = logging.getLogger(__name__)

STOP_REQUESTED = "requested"
STOP_TIMEOUT = "timeout"
STOP_SHUTDOWN = "shutdown"


@dataclass
class SessionController:
    """Start, stop and inspect recording sessions.

    The controller is the only caller of the engine adapter and the only
    writer of the registry. Engine calls always happen outside registry and
    session locks.
    """

    registry: SessionRegistry
    governor: ResourceGovernor
    engine: ProfilingEngineAdapter
    namer: ArtifactNamer
    artifact_store: ArtifactStore
    access_policy: AccessPolicy
    retention: timedelta = timedelta(hours=1)
    clock: Clock = utc_now
    _permits: dict[UUID, Permit] = field(default_factory=dict, init=False, repr=False)
    _permits_lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False
    )

    def start_session(self, requester: str, config: RecordingConfig) -> UUID:
        """Admit, register and begin a new recording; return its id."""
        self._authorize(requester, START, None)
        permit = self.governor.admit(requester, config)
        session = Session(
            id=uuid4(),
            owner=requester,
            config=permit.config,
            state=SessionState.PENDING,
            created_at=self.clock(),
        )
        try:
            self.registry.insert(session)
        except Exception:
            permit.release()
            raise
        with self._permits_lock:
            self._permits[session.id] = permit

        try:
            handle = self.engine.begin(session.config)
        except EngineUnavailable as exc:
            self._fail(session.id, SessionState.PENDING, str(exc))
            logger.warning("Engine refused session %s: %s", session.id, exc)
            raise

        started_at = max(self.clock(), session.created_at)
        try:
            self.registry.transition(
                session.id,
                SessionState.PENDING,
                SessionState.RUNNING,
                lambda current: replace(
                    current, started_at=started_at, engine_handle=handle
                ),
            )
        except Exception:
            # The recording began but could not be recorded as running.
            self._discard_handle(session.id, handle)
            self._fail(session.id, SessionState.PENDING, "failed to mark session running")
            raise
        logger.info(
            "Started session %s for %s (preset=%s)",
            session.id,
            requester,
            session.config.preset,
        )
        return session.id

    def stop_session(self, requester: str, session_id: UUID) -> ArtifactRef:
        """Stop a running session and return its artifact reference."""
        session = self.registry.get(session_id)
        self._authorize(requester, STOP, session.owner)
        return self._stop(session_id, STOP_REQUESTED)

    def describe_session(self, session_id: UUID, requester: str | None = None) -> Session:
        """Return a session snapshot."""
        session = self.registry.get(session_id)
        if requester is not None:
            self._authorize(requester, READ, session.owner)
        return session

    def list_sessions(
        self, requester: str, session_filter: SessionFilter | None = None
    ) -> list[Session]:
        """Return the sessions `requester` may see."""
        self._authorize(requester, LIST, None)
        criteria = session_filter or SessionFilter()
        visible = [
            session
            for session in self.registry.list(replace(criteria, limit=None))
            if self.access_policy.authorize(requester, READ, session.owner)
        ]
        if criteria.limit is not None:
            return visible[: criteria.limit]
        return visible

    def fetch_artifact(self, requester: str, session_id: UUID) -> bytes:
        """Return the stored artifact bytes of a completed session."""
        session = self.describe_session(session_id, requester)
        if session.artifact is None:
            raise InvalidState(f"session {session_id} has no artifact ({session.state})")
        try:
            return self.artifact_store.fetch(session.artifact.location)
        except Exception as exc:
            raise ArtifactStoreError(f"failed to fetch artifact: {exc}") from exc

    def sweep_expired(self, now: datetime | None = None) -> int:
        """Stop every running session whose deadline has passed.

        Expired sessions are all claimed first and then finished in parallel,
        so one stalled engine stop does not hold back the others.
        """
        claimed = self.claim_expired(now)
        if not claimed:
            return 0
        with ThreadPoolExecutor(
            max_workers=len(claimed), thread_name_prefix="session-stop"
        ) as pool:
            list(pool.map(self.finish_stop_quietly, claimed))
        return len(claimed)

    def claim_expired(self, now: datetime | None = None) -> list[Session]:
        """Move every running session past its deadline to STOPPING.

        No engine call happens here; finish each returned snapshot with
        `finish_stop_quietly`.
        """
        moment = now or self.clock()
        running = self.registry.list(SessionFilter(states=frozenset({SessionState.RUNNING})))
        claimed: list[Session] = []
        for session in running:
            deadline = session.deadline
            if deadline is None or deadline > moment:
                continue
            try:
                claimed.append(self._begin_stop(session.id, STOP_TIMEOUT))
            except (InvalidTransition, SessionNotFound) as exc:
                logger.debug("Skipping session %s: %s", session.id, exc)
        return claimed

    def finish_stop_quietly(self, stopping: Session) -> bool:
        """Finish a claimed stop; return False if the session ended FAILED."""
        try:
            self._finish_stop(stopping)
        except (EngineStopFailed, ArtifactStoreError) as exc:
            # The session is already FAILED; nothing else to undo.
            logger.warning(
                "Stop (%s) of session %s failed: %s",
                stopping.stop_reason,
                stopping.id,
                exc,
            )
            return False
        return True

    def drain(self) -> int:
        """Stop all running sessions ahead of shutdown."""
        running = self.registry.list(SessionFilter(states=frozenset({SessionState.RUNNING})))
        return sum(
            1 for session in running if self._stop_quietly(session.id, STOP_SHUTDOWN)
        )

    def purge(self, now: datetime | None = None) -> int:
        """Forget terminal sessions older than the retention window."""
        return self.registry.purge_older_than(self.retention, now or self.clock())

    def recover(self) -> int:
        """Close out sessions left active by a previous process.

        Engine handles do not survive a restart, so running sessions become
        EXPIRED and pending or stopping ones FAILED. Governor counters are
        then rebuilt from the registry.
        """
        closed = 0
        for session in self.registry.restore():
            if session.state is SessionState.RUNNING:
                self.registry.transition(
                    session.id,
                    SessionState.RUNNING,
                    SessionState.EXPIRED,
                    self._terminal_mutator("recording lost on restart"),
                )
                closed += 1
            elif session.state in {SessionState.PENDING, SessionState.STOPPING}:
                self._fail(session.id, session.state, "recording lost on restart")
                closed += 1
        self.governor.reconcile(self.registry.list())
        if closed:
            logger.warning("Closed %s sessions orphaned by a restart", closed)
        return closed

    def _stop(self, session_id: UUID, reason: str) -> ArtifactRef:
        return self._finish_stop(self._begin_stop(session_id, reason))

    def _begin_stop(self, session_id: UUID, reason: str) -> Session:
        return self.registry.transition(
            session_id,
            SessionState.RUNNING,
            SessionState.STOPPING,
            lambda current: replace(current, stop_reason=reason),
        )

    def _finish_stop(self, stopping: Session) -> ArtifactRef:
        session_id = stopping.id
        handle = stopping.engine_handle
        try:
            data = self.engine.end(handle)
        except EngineStopFailed as exc:
            self._fail(session_id, SessionState.STOPPING, str(exc))
            logger.warning("Engine failed to stop session %s: %s", session_id, exc)
            raise

        name = self.namer.name(stopping)
        try:
            location = self.artifact_store.store(name, data)
        except Exception as exc:
            self._fail(session_id, SessionState.STOPPING, f"artifact store failed: {exc}")
            logger.exception("Failed to store artifact for session %s", session_id)
            raise ArtifactStoreError(f"failed to store artifact {name}: {exc}") from exc

        artifact = ArtifactRef(name=name, location=location, size=len(data))
        ended_at = self._ended_at(stopping)
        completed = self.registry.transition(
            session_id,
            SessionState.STOPPING,
            SessionState.COMPLETED,
            lambda current: replace(
                current, ended_at=ended_at, engine_handle=None, artifact=artifact
            ),
        )
        self._release_permit(session_id)
        logger.info(
            "Completed session %s (%s, %s bytes)",
            session_id,
            stopping.stop_reason,
            artifact.size,
        )
        return completed.artifact or artifact

    def _stop_quietly(self, session_id: UUID, reason: str) -> bool:
        try:
            stopping = self._begin_stop(session_id, reason)
        except (InvalidTransition, SessionNotFound) as exc:
            logger.debug("Skipping session %s: %s", session_id, exc)
            return False
        self.finish_stop_quietly(stopping)
        return True

    def _fail(self, session_id: UUID, from_state: SessionState, error: str) -> None:
        self.registry.transition(
            session_id,
            from_state,
            SessionState.FAILED,
            self._terminal_mutator(error),
        )
        self._release_permit(session_id)

    def _terminal_mutator(self, error: str) -> SessionMutator:
        def mutate(current: Session) -> Session:
            return replace(
                current,
                ended_at=self._ended_at(current),
                engine_handle=None,
                artifact=None,
                error=error,
            )

        return mutate

    def _ended_at(self, session: Session) -> datetime:
        return max(self.clock(), session.started_at or session.created_at)

    def _discard_handle(self, session_id: UUID, handle: object) -> None:
        try:
            self.engine.end(handle)
        except EngineStopFailed:
            logger.exception("Failed to release engine handle of session %s", session_id)

    def _release_permit(self, session_id: UUID) -> None:
        with self._permits_lock:
            permit = self._permits.pop(session_id, None)
        if permit is not None:
            permit.release()

    def _authorize(self, identity: str, action: str, owner: str | None) -> None:
        if not self.access_policy.authorize(identity, action, owner):
            raise Unauthorized(identity, action)
