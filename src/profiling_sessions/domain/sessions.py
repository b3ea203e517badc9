"""Domain models for profiling sessions."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from uuid import UUID


class SessionState(StrEnum):
    """Lifecycle states of a recording session."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {SessionState.COMPLETED, SessionState.FAILED, SessionState.EXPIRED}
)

# States that occupy a concurrency slot.
ACTIVE_STATES = frozenset(
    {SessionState.PENDING, SessionState.RUNNING, SessionState.STOPPING}
)

ALLOWED_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.PENDING: frozenset({SessionState.RUNNING, SessionState.FAILED}),
    SessionState.RUNNING: frozenset({SessionState.STOPPING, SessionState.EXPIRED}),
    SessionState.STOPPING: frozenset({SessionState.COMPLETED, SessionState.FAILED}),
    SessionState.COMPLETED: frozenset(),
    SessionState.FAILED: frozenset(),
    SessionState.EXPIRED: frozenset(),
}


@dataclass(frozen=True)
class RecordingConfig:
    """What to record and for how long."""

    preset: str = "default"
    max_duration: timedelta | None = None
    label: str | None = None
    labels: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.preset:
            raise ValueError("preset must not be empty")
        if self.max_duration is not None and self.max_duration <= timedelta(0):
            raise ValueError("max_duration must be positive")
        # Detach from the caller's dict so the config cannot change later.
        object.__setattr__(self, "labels", dict(self.labels))


@dataclass(frozen=True)
class ArtifactRef:
    """Where a completed recording was stored."""

    name: str
    location: str
    size: int


@dataclass(frozen=True)
class Session:
    """Snapshot of a recording session."""

    id: UUID
    owner: str
    config: RecordingConfig
    state: SessionState
    created_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None
    engine_handle: object | None = field(default=None, compare=False, repr=False)
    artifact: ArtifactRef | None = None
    error: str | None = None
    stop_reason: str | None = None

    @property
    def deadline(self) -> datetime | None:
        """Return when the session must be stopped, if it has started."""
        if self.started_at is None or self.config.max_duration is None:
            return None
        return self.started_at + self.config.max_duration

    def check_invariants(self) -> None:
        """Raise ValueError if the snapshot is internally inconsistent."""
        if (self.artifact is not None) != (self.state is SessionState.COMPLETED):
            raise ValueError(f"artifact must be set iff COMPLETED (state={self.state})")
        if self.engine_handle is not None and self.state not in {
            SessionState.RUNNING,
            SessionState.STOPPING,
        }:
            raise ValueError(f"engine handle held in state {self.state}")
        if self.started_at is not None and self.started_at < self.created_at:
            raise ValueError("started_at precedes created_at")
        if self.ended_at is not None:
            floor = self.started_at or self.created_at
            if self.ended_at < floor:
                raise ValueError("ended_at precedes started_at")


@dataclass(frozen=True)
class SessionFilter:
    """Criteria for listing sessions."""

    owner: str | None = None
    states: frozenset[SessionState] | None = None
    limit: int | None = None

    def matches(self, session: Session) -> bool:
        if self.owner is not None and session.owner != self.owner:
            return False
        return self.states is None or session.state in self.states
