"""Facade over the profiling engine."""

import logging
import threading
from dataclasses import dataclass, field
from typing import Protocol

from profiling_sessions.domain.errors import EngineStopFailed, EngineUnavailable
from profiling_sessions.domain.sessions import RecordingConfig

logger = logging.getLogger(__name__)


class ProfilingEngine(Protocol):
    """Interface of the underlying recording capability."""

    def begin(self, config: RecordingConfig) -> object:
        """Start a recording and return an opaque handle."""

    def end(self, handle: object) -> bytes:
        """Finish a recording and return its bytes."""

    def emit(self, event: dict[str, object]) -> None:
        """Record a custom event in any active recording."""


@dataclass
class ProfilingEngineAdapter:
    """Translate engine failures and guard against double `end` calls."""

    engine: ProfilingEngine
    _outstanding: dict[int, object] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def begin(self, config: RecordingConfig) -> object:
        """Begin a recording; raise EngineUnavailable on any engine error."""
        try:
            handle = self.engine.begin(config)
        except Exception as exc:
            raise EngineUnavailable(f"engine refused preset {config.preset!r}: {exc}") from exc
        if handle is None:
            raise EngineUnavailable("engine returned no handle")
        with self._lock:
            self._outstanding[id(handle)] = handle
        return handle

    def end(self, handle: object) -> bytes:
        """End a recording exactly once; raise EngineStopFailed on error.

        The handle counts as released even when the engine fails.
        """
        with self._lock:
            if self._outstanding.get(id(handle)) is not handle:
                raise EngineStopFailed("handle is not outstanding")
            del self._outstanding[id(handle)]
        try:
            data = self.engine.end(handle)
        except Exception as exc:
            raise EngineStopFailed(f"engine failed to end recording: {exc}") from exc
        return bytes(data)

    def emit(self, event: dict[str, object]) -> None:
        """Forward a custom event; never raises."""
        try:
            self.engine.emit(event)
        except Exception:
            logger.exception("Engine rejected custom event")

    def outstanding(self) -> int:
        """Return the number of handles that have not been ended."""
        with self._lock:
            return len(self._outstanding)
