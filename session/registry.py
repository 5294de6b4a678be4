"""Per-request cache of sessions, kept on ``request.state``."""

from typing import TYPE_CHECKING

from starlette.requests import Request
from starlette.responses import Response

from session.session import Session

if TYPE_CHECKING:
    from session.store import SessionStore

_STATE_ATTRIBUTE = "session_registry"


class SessionRegistry:
    """
    Holds every session obtained during one request, keyed by cookie name.

    Registries live on ``request.state`` and die with the request; they are
    never shared between requests.
    """

    def __init__(self, request: Request):
        self._request = request
        self._sessions: dict[str, Session] = {}

    async def get(self, store: "SessionStore", name: str) -> Session:
        """Return the cached session for ``name`` or load it through ``store``."""
        session = self._sessions.get(name)
        if session is None:
            session = await store.new(self._request, name)
            self._sessions[name] = session
        return session

    async def save_all(self, response: Response) -> None:
        """Save every registered session to ``response`` in registration order."""
        for session in self._sessions.values():
            await session.save(self._request, response)

    def __contains__(self, name: str) -> bool:
        return name in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


def get_registry(request: Request) -> SessionRegistry:
    """Return the registry for ``request``, creating it on first use."""
    registry = getattr(request.state, _STATE_ATTRIBUTE, None)
    if registry is None:
        registry = SessionRegistry(request)
        setattr(request.state, _STATE_ATTRIBUTE, registry)
    return registry
