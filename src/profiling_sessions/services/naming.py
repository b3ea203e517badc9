"""Artifact naming for completed recordings."""

import re
from dataclasses import dataclass
from datetime import UTC

from profiling_sessions.domain.sessions import Session

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
MAX_LABEL_LENGTH = 40


@dataclass(frozen=True)
class ArtifactNamer:
    """Build unique, readable artifact names.

    The session id is always part of the name, so two sessions started within
    the same clock tick still get distinct names.
    """

    host_identity: str
    suffix: str = ".folded"

    def name(self, session: Session) -> str:
        """Return the artifact name for a session."""
        started = (session.started_at or session.created_at).astimezone(UTC)
        parts = [
            _sanitize(self.host_identity) or "host",
            started.strftime("%Y%m%dT%H%M%S_%fZ"),
        ]
        label = _sanitize(session.config.label or "")[:MAX_LABEL_LENGTH]
        if label:
            parts.append(label)
        parts.append(session.id.hex)
        return "_".join(parts) + self.suffix


def _sanitize(value: str) -> str:
    return _UNSAFE_CHARS.sub("-", value.strip()).strip("-")
