"""Shared test fixtures."""

import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from uuid import UUID

import pytest

from profiling_sessions.config import Settings
from profiling_sessions.containers import AppContainer, build_container
from profiling_sessions.domain.sessions import RecordingConfig, Session
from profiling_sessions.services.access import RoleAccessPolicy
from profiling_sessions.services.artifacts import ArtifactStore
from profiling_sessions.services.controller import SessionController
from profiling_sessions.services.engine import ProfilingEngine, ProfilingEngineAdapter
from profiling_sessions.services.governor import GovernorPolicy, ResourceGovernor
from profiling_sessions.services.naming import ArtifactNamer
from profiling_sessions.services.registry import SessionRegistry, SessionStore


@dataclass
class ManualClock:
    """Clock that only moves when told to."""

    now: datetime = field(
        default_factory=lambda: datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    )

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@dataclass(eq=False)
class FakeHandle:
    number: int
    config: RecordingConfig


@dataclass
class FakeEngine(ProfilingEngine):
    """Engine that records calls and can be told to fail or block."""

    fail_begin: bool = False
    fail_end: bool = False
    end_gate: threading.Event | None = None
    gated_handles: set[int] | None = None
    payload: bytes = b"main;work 3\n"
    begun: list[FakeHandle] = field(default_factory=list)
    ended: list[FakeHandle] = field(default_factory=list)
    events: list[dict[str, object]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def begin(self, config: RecordingConfig) -> object:
        if self.fail_begin:
            raise RuntimeError("engine offline")
        with self._lock:
            handle = FakeHandle(number=len(self.begun) + 1, config=config)
            self.begun.append(handle)
        return handle

    def end(self, handle: object) -> bytes:
        gated = self.gated_handles is None or (
            getattr(handle, "number", None) in self.gated_handles
        )
        if self.end_gate is not None and gated:
            self.end_gate.wait(timeout=5)
        with self._lock:
            self.ended.append(handle)
        if self.fail_end:
            raise RuntimeError("engine crashed")
        return self.payload

    def emit(self, event: dict[str, object]) -> None:
        self.events.append(event)


@dataclass
class InMemoryArtifactStore(ArtifactStore):
    """In-memory artifact store for tests."""

    objects: dict[str, bytes] = field(default_factory=dict)
    fail: bool = False

    def store(self, name: str, data: bytes) -> str:
        if self.fail:
            raise OSError("disk full")
        location = f"memory://{name}"
        self.objects[location] = data
        return location

    def fetch(self, location: str) -> bytes:
        return self.objects[location]


@dataclass
class InMemorySessionStore(SessionStore):
    """In-memory session mirror for tests."""

    sessions: dict[UUID, Session] = field(default_factory=dict)
    writes: int = 0

    def save(self, session: Session) -> None:
        self.writes += 1
        self.sessions[session.id] = session

    def load(self) -> list[Session]:
        return list(self.sessions.values())


def make_controller(  # noqa: PLR0913
    *,
    engine: FakeEngine | None = None,
    clock: ManualClock | None = None,
    artifact_store: ArtifactStore | None = None,
    session_store: SessionStore | None = None,
    policy: GovernorPolicy | None = None,
    admins: frozenset[str] = frozenset({"ops"}),
) -> SessionController:
    """Build a controller wired with in-memory collaborators."""
    resolved_clock = clock or ManualClock()
    return SessionController(
        registry=SessionRegistry(store=session_store),
        governor=ResourceGovernor(
            policy
            or GovernorPolicy(
                max_concurrent_sessions=4,
                max_concurrent_per_requester=4,
                max_duration=timedelta(minutes=10),
                min_interval_between_starts=timedelta(0),
            ),
            clock=resolved_clock,
        ),
        engine=ProfilingEngineAdapter(engine or FakeEngine()),
        namer=ArtifactNamer(host_identity="test-host"),
        artifact_store=artifact_store or InMemoryArtifactStore(),
        access_policy=RoleAccessPolicy(admin_identities=admins),
        retention=timedelta(hours=1),
        clock=resolved_clock,
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def artifact_store() -> InMemoryArtifactStore:
    return InMemoryArtifactStore()


@pytest.fixture
def controller(
    engine: FakeEngine, clock: ManualClock, artifact_store: InMemoryArtifactStore
) -> SessionController:
    return make_controller(engine=engine, clock=clock, artifact_store=artifact_store)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        api_tokens="token-a=alice,token-b=bob,token-ops=ops",
        admin_identities="ops",
        host_identity="test-host",
        max_concurrent_sessions=1,
        max_concurrent_per_requester=1,
        max_duration_seconds=120,
        min_interval_between_starts_seconds=0,
        artifact_dir=str(tmp_path / "artifacts"),
    )


@pytest.fixture
def container(settings: Settings, engine: FakeEngine) -> AppContainer:
    return build_container(settings, engine=engine)
