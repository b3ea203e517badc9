"""Filesystem-backed artifact store."""

from dataclasses import dataclass
from pathlib import Path

from profiling_sessions.services.artifacts import ArtifactStore

_SCHEME = "file://"


@dataclass
class LocalArtifactStore(ArtifactStore):
    """Store artifacts as files inside a single base directory.

    Locations are `file://<name>` relative to `base_dir`, so they never
    reveal the host's directory layout.
    """

    base_dir: Path

    def store(self, name: str, data: bytes) -> str:
        """Write the artifact and return its `file://` location."""
        path = self._resolve(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            raise FileExistsError(f"artifact {name} already exists")
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_bytes(data)
        tmp_path.replace(path)
        return f"{_SCHEME}{path.relative_to(self._root()).as_posix()}"

    def fetch(self, location: str) -> bytes:
        """Read an artifact written by this store."""
        if not location.startswith(_SCHEME):
            raise ValueError(f"unsupported location {location!r}")
        return self._resolve(location.removeprefix(_SCHEME)).read_bytes()

    def _root(self) -> Path:
        return self.base_dir.resolve()

    def _resolve(self, name: str) -> Path:
        root = self._root()
        path = (root / name).resolve()
        if not path.is_relative_to(root) or path == root:
            raise ValueError(f"invalid artifact name {name!r}")
        return path
