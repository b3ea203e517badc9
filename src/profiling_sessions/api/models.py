"""Request and response models for the control API."""

from datetime import datetime, timedelta
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from profiling_sessions.domain.sessions import (
    ArtifactRef,
    RecordingConfig,
    Session,
    SessionState,
)


class StartSessionRequest(BaseModel):
    """Recording configuration supplied by the caller.

    Only a preset name is accepted; settings are never read from a
    caller-supplied path.
    """

    model_config = ConfigDict(extra="forbid")

    preset: str = Field(default="default", pattern=r"^[a-z0-9][a-z0-9_-]{0,31}$")
    max_duration_seconds: float | None = Field(default=None, gt=0)
    label: str | None = Field(default=None, max_length=64)
    labels: dict[str, str] = Field(default_factory=dict, max_length=16)

    def to_config(self) -> RecordingConfig:
        return RecordingConfig(
            preset=self.preset,
            max_duration=(
                timedelta(seconds=self.max_duration_seconds)
                if self.max_duration_seconds is not None
                else None
            ),
            label=self.label,
            labels=dict(self.labels),
        )


class ArtifactModel(BaseModel):
    """Stored artifact reference."""

    name: str
    location: str
    size: int

    @classmethod
    def from_ref(cls, ref: ArtifactRef) -> "ArtifactModel":
        return cls(name=ref.name, location=ref.location, size=ref.size)


class SessionModel(BaseModel):
    """Public summary of a session."""

    id: UUID
    owner: str
    state: SessionState
    preset: str
    max_duration_seconds: float | None
    label: str | None
    labels: dict[str, str]
    created_at: datetime
    started_at: datetime | None
    ended_at: datetime | None
    artifact: ArtifactModel | None
    error: str | None
    stop_reason: str | None

    @classmethod
    def from_session(cls, session: Session) -> "SessionModel":
        config = session.config
        return cls(
            id=session.id,
            owner=session.owner,
            state=session.state,
            preset=config.preset,
            max_duration_seconds=(
                config.max_duration.total_seconds() if config.max_duration else None
            ),
            label=config.label,
            labels=dict(config.labels),
            created_at=session.created_at,
            started_at=session.started_at,
            ended_at=session.ended_at,
            artifact=ArtifactModel.from_ref(session.artifact) if session.artifact else None,
            error=session.error,
            stop_reason=session.stop_reason,
        )


class SessionEnvelope(BaseModel):
    """Single-session response."""

    session: SessionModel
    duplicate: bool = False


class SessionList(BaseModel):
    """Session listing response."""

    sessions: list[SessionModel]
