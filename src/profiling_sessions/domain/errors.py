"""Errors raised by the session lifecycle manager."""

from uuid import UUID

from profiling_sessions.domain.sessions import SessionState


class SessionError(Exception):
    """Base class for session manager errors."""


class Unauthorized(SessionError):
    """The caller may not perform the requested action."""

    def __init__(self, identity: str, action: str) -> None:
        super().__init__(f"{identity!r} is not allowed to {action}")
        self.identity = identity
        self.action = action


class AdmissionRejected(SessionError):
    """The governor refused to admit a new session."""


class TooManyConcurrentSessions(AdmissionRejected):
    """A global or per-requester concurrency ceiling was reached."""


class DurationExceedsPolicy(AdmissionRejected):
    """The requested duration is longer than policy allows."""


class RateLimited(AdmissionRejected):
    """The requester started another session too recently."""

    def __init__(self, message: str, retry_after: float) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class EngineUnavailable(SessionError):
    """The profiling engine could not begin a recording."""


class EngineStopFailed(SessionError):
    """The profiling engine failed to end a recording."""


class ArtifactStoreError(SessionError):
    """An artifact could not be stored or fetched."""


class SessionNotFound(SessionError):
    """No session with the given id is known."""

    def __init__(self, session_id: UUID) -> None:
        super().__init__(f"session {session_id} not found")
        self.session_id = session_id


class InvalidState(SessionError):
    """The session is not in a state that allows the operation."""


class InvalidTransition(InvalidState):
    """A state transition did not match the session's current state."""

    def __init__(
        self,
        session_id: UUID,
        current: SessionState,
        expected: SessionState,
        target: SessionState,
    ) -> None:
        super().__init__(
            f"session {session_id} cannot move {expected}->{target}: "
            f"current state is {current}"
        )
        self.session_id = session_id
        self.current = current
        self.expected = expected
        self.target = target


class DuplicateSession(ValueError):
    """A session id was inserted twice."""
