"""Session value object, cookie options and identifier minting."""

import base64
import secrets
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from starlette.requests import Request
from starlette.responses import Response

from session.constants import DEFAULT_MAX_AGE, SESSION_ID_BYTES

if TYPE_CHECKING:
    from session.store import SessionStore


class SessionSource(str, Enum):
    """How a session was produced for the current request."""
    NEW = "new"
    """No cookie was presented."""

    INVALID = "invalid"
    """The cookie or the stored payload failed to decode."""

    MISSING = "missing"
    """The cookie was valid but no live record exists for it."""

    LOADED = "loaded"
    """The record was found and its values decoded."""


@dataclass
class CookieOptions:
    """
    Attributes of the session cookie.

    A max_age of zero or less deletes the session when it is saved.
    """
    path: str = "/"
    domain: Optional[str] = None
    max_age: int = DEFAULT_MAX_AGE
    secure: bool = False
    http_only: bool = True
    same_site: Optional[str] = "lax"

    def copy(self) -> "CookieOptions":
        return replace(self)


def new_session_id() -> str:
    """Mint a random identifier using only the base32 alphabet (A-Z, 2-7)."""
    raw = secrets.token_bytes(SESSION_ID_BYTES)
    return base64.b32encode(raw).decode("ascii").rstrip("=")


def set_session_cookie(
    response: Response, name: str, value: str, options: CookieOptions
) -> None:
    """
    Write the session cookie, or an expired one when max_age <= 0.

    Both Max-Age and Expires are sent so older clients honour the lifetime.
    """
    if options.max_age <= 0:
        response.delete_cookie(
            name,
            path=options.path,
            domain=options.domain,
            secure=options.secure,
            httponly=options.http_only,
            samesite=options.same_site,
        )
        return

    response.set_cookie(
        name,
        value,
        max_age=options.max_age,
        expires=options.max_age,
        path=options.path,
        domain=options.domain,
        secure=options.secure,
        httponly=options.http_only,
        samesite=options.same_site,
    )


class Session:
    """
    Per-request session state.

    Attributes:
        id: Opaque identifier; empty until the first save.
        values: Mutable, JSON-compatible session values.
        options: Cookie options copied from the store defaults.
        is_new: True unless the values were loaded from a record.
        source: Outcome of reading the inbound cookie.
    """

    def __init__(
        self,
        store: "SessionStore",
        name: str,
        options: Optional[CookieOptions] = None,
    ):
        self.id = ""
        self.values: dict[str, Any] = {}
        self.options = options or CookieOptions()
        self.is_new = True
        self.source = SessionSource.NEW
        self._store = store
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @property
    def store(self) -> "SessionStore":
        return self._store

    async def save(self, request: Request, response: Response) -> None:
        """Persist the session through its store and set the cookie on ``response``."""
        await self._store.save(request, response, self)

    def __repr__(self) -> str:
        return (
            f"Session(name={self._name!r}, id={self.id!r}, "
            f"is_new={self.is_new}, source={self.source.value!r})"
        )
