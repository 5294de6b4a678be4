"""
Session store abstraction used by request handlers.

This module defines the interface request handlers program against. A
store hands out sessions for a named cookie, persists them on save and
reports whether its backend is reachable. The DynamoDB implementation lives
in session.dynamodb_store.
"""

from abc import ABC, abstractmethod

from starlette.requests import Request
from starlette.responses import Response

from session.session import Session


class SessionStore(ABC):
    """
    Where sessions come from and go to.

    Every method is a coroutine because implementations talk to a network
    backend on the request path.
    """

    @abstractmethod
    async def new(self, request: Request, name: str) -> Session:
        """
        Build a session for ``name`` from the request cookies.

        The session is not cached; calling new() twice in one request reads
        the backend twice and returns two independent objects.

        Args:
            request: The incoming request carrying the session cookie.
            name: Cookie name of the session.

        Returns:
            A loaded session, or a fresh one when there is no usable cookie
            or no matching record.

        Raises:
            botocore.exceptions.ClientError: If the backend lookup fails.
        """
        pass

    @abstractmethod
    async def get(self, request: Request, name: str) -> Session:
        """
        Return the session for ``name``, creating it on first use in a request.

        Repeated calls within one request return the same object, so every
        handler and dependency sees the same values.
        """
        pass

    @abstractmethod
    async def save(self, request: Request, response: Response, session: Session) -> None:
        """
        Persist a session and write its cookie to the response.

        A session whose options.max_age is zero or less is deleted from the
        backend and its cookie expired instead.

        Raises:
            SessionEncodeError: If the values cannot be encoded. Nothing is
                written in that case.
            botocore.exceptions.ClientError: If the backend write fails.
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Whether the backend answers right now.

        Never raises: an unreachable backend is reported as False.
        """
        pass
