"""Supabase Storage artifact store."""

from dataclasses import dataclass

from supabase import Client

from profiling_sessions.services.artifacts import ArtifactStore

_SCHEME = "supabase://"


@dataclass
class SupabaseArtifactStore(ArtifactStore):
    """Store artifacts as objects in a Supabase Storage bucket."""

    client: Client
    bucket: str

    def store(self, name: str, data: bytes) -> str:
        """Upload the artifact and return a `supabase://bucket/name` location."""
        self.client.storage.from_(self.bucket).upload(
            path=name,
            file=data,
            file_options={"content-type": "text/plain; charset=utf-8"},
        )
        return f"{_SCHEME}{self.bucket}/{name}"

    def fetch(self, location: str) -> bytes:
        """Download an artifact previously stored in this bucket."""
        prefix = f"{_SCHEME}{self.bucket}/"
        if not location.startswith(prefix):
            raise ValueError(f"location {location!r} is not in bucket {self.bucket}")
        return self.client.storage.from_(self.bucket).download(
            location.removeprefix(prefix)
        )
