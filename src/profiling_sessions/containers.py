"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from supabase import create_client

from profiling_sessions.adapters.local_artifact_store import LocalArtifactStore
from profiling_sessions.adapters.sampling_engine import SamplingProfilerEngine
from profiling_sessions.adapters.supabase_artifact_store import SupabaseArtifactStore
from profiling_sessions.adapters.supabase_session_store import SupabaseSessionStore
from profiling_sessions.config import Settings, parse_api_tokens, parse_identities
from profiling_sessions.services.access import RoleAccessPolicy
from profiling_sessions.services.artifacts import ArtifactStore
from profiling_sessions.services.controller import SessionController
from profiling_sessions.services.engine import ProfilingEngine, ProfilingEngineAdapter
from profiling_sessions.services.governor import GovernorPolicy, ResourceGovernor
from profiling_sessions.services.naming import ArtifactNamer
from profiling_sessions.services.registry import SessionRegistry, SessionStore
from profiling_sessions.services.sweeper import SessionSweeper


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    api_tokens: dict[str, str]
    presets: frozenset[str]
    registry: SessionRegistry
    governor: ResourceGovernor
    engine: ProfilingEngineAdapter
    artifact_store: ArtifactStore
    controller: SessionController
    sweeper: SessionSweeper
    close_resources: Callable[[], Awaitable[None]]


def build_policy(settings: Settings) -> GovernorPolicy:
    """Translate settings into governor limits."""
    return GovernorPolicy(
        max_concurrent_sessions=settings.max_concurrent_sessions,
        max_concurrent_per_requester=settings.max_concurrent_per_requester,
        max_duration=timedelta(seconds=settings.max_duration_seconds),
        min_interval_between_starts=timedelta(
            seconds=settings.min_interval_between_starts_seconds
        ),
    )


def build_container(
    settings: Settings | None = None,
    engine: ProfilingEngine | None = None,
) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    artifact_store: ArtifactStore
    session_store: SessionStore | None = None
    if resolved_settings.supabase_url and resolved_settings.supabase_service_key:
        supabase_client = create_client(
            resolved_settings.supabase_url, resolved_settings.supabase_service_key
        )
        artifact_store = SupabaseArtifactStore(
            supabase_client, resolved_settings.supabase_bucket
        )
        session_store = SupabaseSessionStore(
            supabase_client, resolved_settings.supabase_sessions_table
        )
    else:
        artifact_store = LocalArtifactStore(Path(resolved_settings.artifact_dir))

    registry = SessionRegistry(store=session_store)
    governor = ResourceGovernor(build_policy(resolved_settings))
    engine_adapter = ProfilingEngineAdapter(engine or SamplingProfilerEngine())
    controller = SessionController(
        registry=registry,
        governor=governor,
        engine=engine_adapter,
        namer=ArtifactNamer(
            host_identity=resolved_settings.host_identity,
            suffix=resolved_settings.artifact_suffix,
        ),
        artifact_store=artifact_store,
        access_policy=RoleAccessPolicy(
            admin_identities=parse_identities(resolved_settings.admin_identities)
            or frozenset(),
            allowed_identities=parse_identities(resolved_settings.allowed_identities),
        ),
        retention=timedelta(seconds=resolved_settings.retention_seconds),
    )
    sweeper = SessionSweeper(controller, resolved_settings.sweep_interval_seconds)

    async def close_resources() -> None:
        await sweeper.stop()

    return AppContainer(
        settings=resolved_settings,
        api_tokens=parse_api_tokens(resolved_settings.api_tokens),
        presets=parse_identities(resolved_settings.allowed_presets) or frozenset(),
        registry=registry,
        governor=governor,
        engine=engine_adapter,
        artifact_store=artifact_store,
        controller=controller,
        sweeper=sweeper,
        close_resources=close_resources,
    )
