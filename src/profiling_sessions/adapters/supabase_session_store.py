"""Supabase-backed audit mirror of session snapshots."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from supabase import Client

from profiling_sessions.domain.sessions import (
    ArtifactRef,
    RecordingConfig,
    Session,
    SessionState,
)
from profiling_sessions.services.registry import SessionStore

_COLUMNS = (
    "id, owner, state, preset, max_duration_seconds, label, labels_json, "
    "created_at, started_at, ended_at, artifact_name, artifact_location, "
    "artifact_size, error, stop_reason"
)


@dataclass
class SupabaseSessionStore(SessionStore):
    """Supabase implementation for session snapshots."""

    client: Client
    table: str = "profiling_sessions"

    def save(self, session: Session) -> None:
        """Upsert the session row."""
        self.client.table(self.table).upsert(_to_row(session)).execute()

    def load(self) -> list[Session]:
        """Return all stored sessions."""
        response = self.client.table(self.table).select(_COLUMNS).execute()
        return [_from_row(row) for row in response.data or []]


def _to_row(session: Session) -> dict[str, object]:
    config = session.config
    artifact = session.artifact
    return {
        "id": str(session.id),
        "owner": session.owner,
        "state": session.state.value,
        "preset": config.preset,
        "max_duration_seconds": (
            config.max_duration.total_seconds() if config.max_duration else None
        ),
        "label": config.label,
        "labels_json": dict(config.labels),
        "created_at": session.created_at.isoformat(),
        "started_at": _iso(session.started_at),
        "ended_at": _iso(session.ended_at),
        "artifact_name": artifact.name if artifact else None,
        "artifact_location": artifact.location if artifact else None,
        "artifact_size": artifact.size if artifact else None,
        "error": session.error,
        "stop_reason": session.stop_reason,
    }


def _from_row(row: dict[str, object]) -> Session:
    max_duration = row.get("max_duration_seconds")
    artifact = None
    if row.get("artifact_location"):
        artifact = ArtifactRef(
            name=str(row["artifact_name"]),
            location=str(row["artifact_location"]),
            size=int(row.get("artifact_size") or 0),
        )
    return Session(
        id=UUID(str(row["id"])),
        owner=str(row["owner"]),
        config=RecordingConfig(
            preset=str(row["preset"]),
            max_duration=(
                timedelta(seconds=float(max_duration))
                if max_duration is not None
                else None
            ),
            label=row.get("label"),
            labels=dict(row.get("labels_json") or {}),
        ),
        state=SessionState(str(row["state"])),
        created_at=datetime.fromisoformat(str(row["created_at"])),
        started_at=_parse(row.get("started_at")),
        ended_at=_parse(row.get("ended_at")),
        artifact=artifact,
        error=row.get("error"),
        stop_reason=row.get("stop_reason"),
    )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse(value: object) -> datetime | None:
    return datetime.fromisoformat(str(value)) if value else None
