"""Authorization rules for session control."""

from dataclasses import dataclass, field
from typing import Protocol

START = "start"
STOP = "stop"
READ = "read"
LIST = "list"

_OWNER_ACTIONS = {STOP, READ}


class AccessPolicy(Protocol):
    """Decides whether an identity may act on a session."""

    def authorize(self, identity: str, action: str, session_owner: str | None) -> bool:
        """Return true when the action is allowed."""


@dataclass(frozen=True)
class RoleAccessPolicy(AccessPolicy):
    """Admins may do anything; others may manage only their own sessions.

    `allowed_identities=None` lets every authenticated identity start
    sessions.
    """

    admin_identities: frozenset[str] = field(default_factory=frozenset)
    allowed_identities: frozenset[str] | None = None

    def authorize(self, identity: str, action: str, session_owner: str | None) -> bool:
        """Apply the admin/owner rules."""
        if not identity:
            return False
        if identity in self.admin_identities:
            return True
        if self.allowed_identities is not None and identity not in self.allowed_identities:
            return False
        if action in {START, LIST}:
            return True
        if action in _OWNER_ACTIONS:
            return session_owner is not None and session_owner == identity
        return False
