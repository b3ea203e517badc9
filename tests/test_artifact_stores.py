"""Tests for artifact store adapters."""

import pytest

from profiling_sessions.adapters.local_artifact_store import LocalArtifactStore
from profiling_sessions.adapters.supabase_artifact_store import SupabaseArtifactStore


def test_local_store_round_trip(tmp_path) -> None:
    store = LocalArtifactStore(tmp_path / "artifacts")

    location = store.store("host_1.folded", b"main 1\n")

    assert location == "file://host_1.folded"
    assert str(tmp_path) not in location
    assert store.fetch(location) == b"main 1\n"
    assert not list((tmp_path / "artifacts").glob("*.tmp"))


def test_local_store_refuses_overwrite(tmp_path) -> None:
    store = LocalArtifactStore(tmp_path)
    store.store("a.folded", b"first")

    with pytest.raises(FileExistsError):
        store.store("a.folded", b"second")

    assert (tmp_path / "a.folded").read_bytes() == b"first"


def test_local_store_rejects_paths_outside_root(tmp_path) -> None:
    store = LocalArtifactStore(tmp_path / "artifacts")
    outside = tmp_path / "secret.txt"
    outside.write_bytes(b"secret")

    with pytest.raises(ValueError):
        store.store("../escape.folded", b"x")
    with pytest.raises(ValueError):
        store.fetch(f"file://{outside}")
    with pytest.raises(ValueError):
        store.fetch("file://../secret.txt")
    with pytest.raises(ValueError):
        store.fetch("s3://bucket/a.folded")


class _FakeBucket:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.options: dict[str, str] = {}

    def upload(self, path: str, file: bytes, file_options: dict[str, str]) -> None:
        self.objects[path] = file
        self.options = file_options

    def download(self, path: str) -> bytes:
        return self.objects[path]


class _FakeStorage:
    def __init__(self) -> None:
        self.buckets: dict[str, _FakeBucket] = {}

    def from_(self, bucket: str) -> _FakeBucket:
        return self.buckets.setdefault(bucket, _FakeBucket())


class _FakeClient:
    def __init__(self) -> None:
        self.storage = _FakeStorage()


def test_supabase_store_uploads_and_downloads() -> None:
    client = _FakeClient()
    store = SupabaseArtifactStore(client, "profiles")  # type: ignore[arg-type]

    location = store.store("host_1.folded", b"main 1\n")

    assert location == "supabase://profiles/host_1.folded"
    assert client.storage.buckets["profiles"].options["content-type"].startswith(
        "text/plain"
    )
    assert store.fetch(location) == b"main 1\n"
    with pytest.raises(ValueError):
        store.fetch("supabase://other/host_1.folded")
