"""HTTP client for the session control API."""

from dataclasses import dataclass
from uuid import UUID

import httpx

from profiling_sessions.api.models import SessionEnvelope, SessionList, SessionModel


class ControlApiError(RuntimeError):
    """The control API returned an error response."""

    def __init__(self, status_code: int, error: str, message: str) -> None:
        super().__init__(f"{status_code} {error}: {message}")
        self.status_code = status_code
        self.error = error
        self.message = message


@dataclass
class HttpxControlClient:
    """Remote control of profiling sessions implemented with httpx."""

    base_url: str
    api_token: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, base_url: str, api_token: str) -> "HttpxControlClient":
        """Create a control client with a managed httpx session."""
        return cls(
            base_url=base_url.rstrip("/"),
            api_token=api_token,
            http_client=httpx.AsyncClient(),
        )

    async def start(
        self,
        preset: str = "default",
        max_duration_seconds: float | None = None,
        label: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> SessionModel:
        """Start a session and return its summary."""
        payload: dict[str, object] = {"preset": preset}
        if max_duration_seconds is not None:
            payload["max_duration_seconds"] = max_duration_seconds
        if label is not None:
            payload["label"] = label
        if labels:
            payload["labels"] = labels
        response = await self._request("POST", "/sessions", json=payload)
        return SessionEnvelope.model_validate(response.json()).session

    async def stop(self, session_id: UUID) -> SessionEnvelope:
        """Stop a session; the envelope flags duplicate stops."""
        response = await self._request("POST", f"/sessions/{session_id}/stop")
        return SessionEnvelope.model_validate(response.json())

    async def get(self, session_id: UUID) -> SessionModel:
        """Return a session summary."""
        response = await self._request("GET", f"/sessions/{session_id}")
        return SessionEnvelope.model_validate(response.json()).session

    async def list(
        self,
        states: list[str] | None = None,
        owner: str | None = None,
        limit: int = 50,
    ) -> list[SessionModel]:
        """List sessions visible to this client's identity."""
        params: dict[str, object] = {"limit": limit}
        if states:
            params["state"] = states
        if owner:
            params["owner"] = owner
        response = await self._request("GET", "/sessions", params=params)
        return SessionList.model_validate(response.json()).sessions

    async def download_artifact(self, session_id: UUID) -> bytes:
        """Download the artifact bytes of a completed session."""
        response = await self._request("GET", f"/sessions/{session_id}/artifact")
        return response.content

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()

    async def _request(self, method: str, path: str, **kwargs: object) -> httpx.Response:
        response = await self.http_client.request(
            method,
            f"{self.base_url}{path}",
            headers={"X-Api-Token": self.api_token},
            timeout=30,
            **kwargs,
        )
        if response.is_success:
            return response
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        raise ControlApiError(
            response.status_code,
            str(body.get("error", "http_error")),
            str(body.get("message") or body.get("detail") or response.text),
        )
