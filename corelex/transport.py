"""HTTP transport collaborator.

The pipeline hands the transport a finished :class:`HTTPRequest` and gets
back an :class:`HTTPResponse` for every HTTP status. Only network-level
failures raise, as :class:`TransportError`.
"""

import abc
import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable

import requests

from .errors import TransportError

_LOG = logging.getLogger(__name__)


@dataclass
class HTTPRequest:
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None
    params: dict | None = None


@dataclass
class HTTPResponse:
    status_code: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)


class Transport(abc.ABC):
    """Sends one HTTP request."""

    @abc.abstractmethod
    async def send(self, request: HTTPRequest) -> HTTPResponse:
        """Send *request*; raise :class:`TransportError` on network failure."""

    async def aclose(self) -> None:
        """Release connections held by the transport."""


class RequestsTransport(Transport):
    """Transport backed by ``requests`` sessions.

    ``requests`` is blocking, so each call runs in a worker thread and
    several requests may be in flight at once. ``requests.Session`` is not
    thread-safe, so every worker thread gets its own session from
    *session_factory*. A *session* passed in explicitly is shared by all
    threads and must tolerate concurrent use.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        session: requests.Session | None = None,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        self._timeout = timeout
        self._shared = session
        self._session_factory = session_factory
        self._local = threading.local()
        self._sessions: list[requests.Session] = []
        self._sessions_lock = threading.Lock()

    def _session(self) -> requests.Session:
        if self._shared is not None:
            return self._shared
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._local.session = self._session_factory()
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def _send_blocking(self, request: HTTPRequest) -> HTTPResponse:
        try:
            resp = self._session().request(
                request.method,
                request.url,
                headers=request.headers,
                data=request.body,
                params=request.params,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"{request.method} {request.url} failed: {e}") from e
        return HTTPResponse(
            status_code=resp.status_code,
            body=resp.content,
            headers=dict(resp.headers),
        )

    async def send(self, request: HTTPRequest) -> HTTPResponse:
        response = await asyncio.to_thread(self._send_blocking, request)
        _LOG.debug("%s %s -> %s", request.method, request.url, response.status_code)
        return response

    async def aclose(self) -> None:
        if self._shared is not None:
            self._shared.close()
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
