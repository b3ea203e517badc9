"""ASGI entrypoint for the profiling sessions API."""

from profiling_sessions.api.app import create_app
from profiling_sessions.containers import build_container

app = create_app(build_container())
