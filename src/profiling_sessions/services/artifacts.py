"""Artifact storage interface."""

from typing import Protocol


class ArtifactStore(Protocol):
    """Storage backend for recording artifacts."""

    def store(self, name: str, data: bytes) -> str:
        """Persist artifact bytes under `name` and return their location."""

    def fetch(self, location: str) -> bytes:
        """Return the bytes stored at `location`."""
