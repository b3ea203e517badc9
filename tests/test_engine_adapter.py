"""Tests for the profiling engine adapter."""

import pytest

from profiling_sessions.domain.errors import EngineStopFailed, EngineUnavailable
from profiling_sessions.domain.sessions import RecordingConfig
from profiling_sessions.services.engine import ProfilingEngineAdapter
from tests.conftest import FakeEngine


class _NoHandleEngine(FakeEngine):
    def begin(self, config: RecordingConfig) -> object:
        return None


class _LoudEngine(FakeEngine):
    def emit(self, event: dict[str, object]) -> None:
        raise RuntimeError("no recording")


def test_begin_and_end_track_outstanding_handles() -> None:
    adapter = ProfilingEngineAdapter(FakeEngine())

    handle = adapter.begin(RecordingConfig())
    assert adapter.outstanding() == 1

    assert adapter.end(handle) == b"main;work 3\n"
    assert adapter.outstanding() == 0


def test_end_twice_raises_without_calling_engine() -> None:
    engine = FakeEngine()
    adapter = ProfilingEngineAdapter(engine)
    handle = adapter.begin(RecordingConfig())
    adapter.end(handle)

    with pytest.raises(EngineStopFailed):
        adapter.end(handle)

    assert len(engine.ended) == 1


def test_begin_failure_is_engine_unavailable() -> None:
    adapter = ProfilingEngineAdapter(FakeEngine(fail_begin=True))

    with pytest.raises(EngineUnavailable) as excinfo:
        adapter.begin(RecordingConfig(preset="default"))

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert adapter.outstanding() == 0


def test_missing_handle_is_engine_unavailable() -> None:
    adapter = ProfilingEngineAdapter(_NoHandleEngine())

    with pytest.raises(EngineUnavailable):
        adapter.begin(RecordingConfig())


def test_end_failure_still_releases_handle() -> None:
    adapter = ProfilingEngineAdapter(FakeEngine(fail_end=True))
    handle = adapter.begin(RecordingConfig())

    with pytest.raises(EngineStopFailed):
        adapter.end(handle)

    assert adapter.outstanding() == 0


def test_emit_forwards_and_never_raises() -> None:
    engine = FakeEngine()
    ProfilingEngineAdapter(engine).emit({"kind": "deploy"})
    assert engine.events == [{"kind": "deploy"}]

    ProfilingEngineAdapter(_LoudEngine()).emit({"kind": "deploy"})
