"""Session control endpoints authenticated with API tokens."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.responses import Response

from profiling_sessions.api.models import (
    SessionEnvelope,
    SessionList,
    SessionModel,
    StartSessionRequest,
)
from profiling_sessions.domain.errors import InvalidTransition
from profiling_sessions.domain.sessions import SessionFilter, SessionState

if TYPE_CHECKING:
    from profiling_sessions.containers import AppContainer

router = APIRouter(prefix="/sessions", tags=["sessions"])

_DUPLICATE_STOP_STATES = {SessionState.STOPPING, SessionState.COMPLETED}


def require_identity(
    request: Request, x_api_token: str | None = Header(default=None)
) -> str:
    """Resolve the caller's identity from the X-Api-Token header."""
    container: AppContainer = request.app.state.container
    identity = container.api_tokens.get(x_api_token or "")
    if not identity:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return identity


@router.post("", status_code=status.HTTP_201_CREATED)
def start_session(
    body: StartSessionRequest,
    request: Request,
    identity: str = Depends(require_identity),
) -> SessionEnvelope:
    """Start a recording session."""
    container: AppContainer = request.app.state.container
    if container.presets and body.preset not in container.presets:
        raise HTTPException(
            status_code=422,
            detail=f"Unknown preset {body.preset!r}",
        )
    session_id = container.controller.start_session(identity, body.to_config())
    session = container.controller.describe_session(session_id, identity)
    return SessionEnvelope(session=SessionModel.from_session(session))


@router.post("/{session_id}/stop")
def stop_session(
    session_id: UUID,
    request: Request,
    identity: str = Depends(require_identity),
) -> SessionEnvelope:
    """Stop a session; a repeated stop returns the current state."""
    container: AppContainer = request.app.state.container
    controller = container.controller
    try:
        controller.stop_session(identity, session_id)
    except InvalidTransition as exc:
        if exc.current not in _DUPLICATE_STOP_STATES:
            raise
        session = controller.describe_session(session_id, identity)
        return SessionEnvelope(session=SessionModel.from_session(session), duplicate=True)
    session = controller.describe_session(session_id, identity)
    return SessionEnvelope(session=SessionModel.from_session(session))


@router.get("/{session_id}")
def get_session(
    session_id: UUID,
    request: Request,
    identity: str = Depends(require_identity),
) -> SessionEnvelope:
    """Return a session summary."""
    container: AppContainer = request.app.state.container
    session = container.controller.describe_session(session_id, identity)
    return SessionEnvelope(session=SessionModel.from_session(session))


@router.get("/{session_id}/artifact")
def get_artifact(
    session_id: UUID,
    request: Request,
    identity: str = Depends(require_identity),
) -> Response:
    """Download the artifact of a completed session."""
    container: AppContainer = request.app.state.container
    controller = container.controller
    data = controller.fetch_artifact(identity, session_id)
    session = controller.describe_session(session_id, identity)
    filename = session.artifact.name if session.artifact else f"{session_id}.bin"
    return Response(
        content=data,
        media_type="application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("")
def list_sessions(
    request: Request,
    identity: str = Depends(require_identity),
    state: list[SessionState] | None = Query(default=None),
    owner: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
) -> SessionList:
    """List sessions visible to the caller."""
    container: AppContainer = request.app.state.container
    session_filter = SessionFilter(
        owner=owner,
        states=frozenset(state) if state else None,
        limit=limit,
    )
    sessions = container.controller.list_sessions(identity, session_filter)
    return SessionList(sessions=[SessionModel.from_session(s) for s in sessions])
