"""Stack-sampling profiling engine built on `sys._current_frames`."""

import json
import sys
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import FrameType

from profiling_sessions.domain.sessions import RecordingConfig
from profiling_sessions.services.engine import ProfilingEngine

# Sampling interval in seconds per preset.
PRESETS: dict[str, float] = {
    "default": 0.01,
    "high-resolution": 0.001,
    "low-overhead": 0.05,
}

MAX_STACK_DEPTH = 128


@dataclass
class _Recording:
    config: RecordingConfig
    interval: float
    started_at: datetime
    stacks: Counter[str] = field(default_factory=Counter)
    events: list[str] = field(default_factory=list)
    samples: int = 0
    stop_event: threading.Event = field(default_factory=threading.Event)
    lock: threading.Lock = field(default_factory=threading.Lock)
    thread: threading.Thread | None = None


@dataclass
class SamplingProfilerEngine(ProfilingEngine):
    """Engine that samples every thread's stack on a background thread.

    Each recording owns its own sampler thread, so concurrent recordings are
    independent. Output is a folded-stack text document followed by the
    custom events emitted while the recording was active.
    """

    presets: dict[str, float] = field(default_factory=lambda: dict(PRESETS))
    _recordings: dict[int, _Recording] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def begin(self, config: RecordingConfig) -> object:
        """Start a sampler thread for the preset's interval."""
        interval = self.presets.get(config.preset)
        if interval is None:
            raise ValueError(f"unknown preset {config.preset!r}")
        recording = _Recording(
            config=config, interval=interval, started_at=datetime.now(tz=UTC)
        )
        recording.thread = threading.Thread(
            target=self._sample_loop,
            args=(recording,),
            name=f"profiling-sampler-{config.preset}",
            daemon=True,
        )
        with self._lock:
            self._recordings[id(recording)] = recording
        recording.thread.start()
        return recording

    def end(self, handle: object) -> bytes:
        """Stop the sampler and render the folded-stack output."""
        if not isinstance(handle, _Recording):
            raise TypeError("not a sampling recording handle")
        with self._lock:
            if self._recordings.pop(id(handle), None) is None:
                raise RuntimeError("recording already ended")
        handle.stop_event.set()
        if handle.thread is not None:
            handle.thread.join()
        return _render(handle).encode("utf-8")

    def emit(self, event: dict[str, object]) -> None:
        """Append an event to every active recording."""
        line = json.dumps(
            {"at": datetime.now(tz=UTC).isoformat(), **event},
            default=str,
            sort_keys=True,
        )
        with self._lock:
            recordings = list(self._recordings.values())
        for recording in recordings:
            with recording.lock:
                recording.events.append(line)

    def active_recordings(self) -> int:
        with self._lock:
            return len(self._recordings)

    def _sample_loop(self, recording: _Recording) -> None:
        own_ident = threading.get_ident()
        while not recording.stop_event.wait(recording.interval):
            frames = sys._current_frames()  # noqa: SLF001
            collapsed = [
                _collapse(frame)
                for ident, frame in frames.items()
                if ident != own_ident
            ]
            with recording.lock:
                recording.samples += 1
                recording.stacks.update(stack for stack in collapsed if stack)


def _collapse(frame: FrameType | None) -> str:
    """Render a frame chain root-first as `file:func;file:func`."""
    names: list[str] = []
    while frame is not None and len(names) < MAX_STACK_DEPTH:
        code = frame.f_code
        names.append(f"{code.co_filename}:{code.co_name}")
        frame = frame.f_back
    return ";".join(reversed(names))


def _render(recording: _Recording) -> str:
    with recording.lock:
        stacks = recording.stacks.most_common()
        events = list(recording.events)
        samples = recording.samples
    lines = [
        f"# preset={recording.config.preset} interval={recording.interval}",
        f"# started_at={recording.started_at.isoformat()} samples={samples}",
    ]
    lines.extend(f"{stack} {count}" for stack, count in stacks)
    lines.extend(f"# event {event}" for event in events)
    return "\n".join(lines) + "\n"
