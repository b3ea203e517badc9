"""Admission control for new recording sessions."""

import logging
import threading
from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta

from profiling_sessions.domain.errors import (
    DurationExceedsPolicy,
    RateLimited,
    TooManyConcurrentSessions,
)
from profiling_sessions.domain.sessions import ACTIVE_STATES, RecordingConfig, Session

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True)
class GovernorPolicy:
    """Limits applied before a session is admitted."""

    max_concurrent_sessions: int = 4
    max_concurrent_per_requester: int = 2
    max_duration: timedelta = timedelta(minutes=10)
    min_interval_between_starts: timedelta = timedelta(seconds=5)

    def __post_init__(self) -> None:
        if self.max_concurrent_sessions < 1 or self.max_concurrent_per_requester < 1:
            raise ValueError("concurrency limits must be at least 1")
        if self.max_duration <= timedelta(0):
            raise ValueError("max_duration must be positive")


@dataclass
class Permit:
    """A reserved concurrency slot; release it exactly when the session ends."""

    requester: str
    config: RecordingConfig
    _release: Callable[["Permit"], None] = field(repr=False)
    released: bool = False

    def release(self) -> None:
        """Return the slot to the governor. Safe to call more than once."""
        self._release(self)


@dataclass
class ResourceGovernor:
    """Reserve concurrency slots and enforce duration and rate limits.

    Checks and reservation happen under one lock, so concurrent admissions
    can never overshoot the ceilings.
    """

    policy: GovernorPolicy
    clock: Clock = utc_now
    _active: int = field(default=0, init=False)
    _per_requester: Counter[str] = field(default_factory=Counter, init=False)
    _last_start: dict[str, datetime] = field(default_factory=dict, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def admit(self, requester: str, config: RecordingConfig) -> Permit:
        """Reserve a slot for `requester` or raise an AdmissionRejected."""
        if config.max_duration is None:
            config = replace(config, max_duration=self.policy.max_duration)
        elif config.max_duration > self.policy.max_duration:
            raise DurationExceedsPolicy(
                f"requested {config.max_duration.total_seconds():g}s exceeds "
                f"the {self.policy.max_duration.total_seconds():g}s limit"
            )

        with self._lock:
            now = self.clock()
            if self._active >= self.policy.max_concurrent_sessions:
                raise TooManyConcurrentSessions(
                    f"{self._active} of {self.policy.max_concurrent_sessions} "
                    "session slots in use"
                )
            if self._per_requester[requester] >= self.policy.max_concurrent_per_requester:
                raise TooManyConcurrentSessions(
                    f"{requester!r} already has "
                    f"{self._per_requester[requester]} active sessions"
                )
            last = self._last_start.get(requester)
            if last is not None:
                wait = last + self.policy.min_interval_between_starts - now
                if wait > timedelta(0):
                    raise RateLimited(
                        f"{requester!r} must wait {wait.total_seconds():.1f}s "
                        "before starting another session",
                        retry_after=wait.total_seconds(),
                    )
            self._active += 1
            self._per_requester[requester] += 1
            self._last_start[requester] = now

        logger.debug("Admitted session for %s", requester)
        return Permit(requester=requester, config=config, _release=self._release)

    def reconcile(self, sessions: Iterable[Session]) -> None:
        """Rebuild counters from the sessions that still hold slots."""
        holders = Counter(
            session.owner for session in sessions if session.state in ACTIVE_STATES
        )
        with self._lock:
            self._per_requester = holders
            self._active = sum(holders.values())
        logger.info("Reconciled governor counters: %s active", self._active)

    def active(self) -> int:
        with self._lock:
            return self._active

    def active_for(self, requester: str) -> int:
        with self._lock:
            return self._per_requester[requester]

    def _release(self, permit: Permit) -> None:
        with self._lock:
            if permit.released:
                return
            permit.released = True
            self._active = max(self._active - 1, 0)
            self._per_requester[permit.requester] -= 1
            if self._per_requester[permit.requester] <= 0:
                del self._per_requester[permit.requester]
