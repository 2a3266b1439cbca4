"""
The boundary between the execution engine and whatever actually talks HTTP.

A transport issues one request and either returns a :class:`TransportResponse`
or raises an :class:`~metafetch.http.exceptions.HttpError`. It is cancelled
through a :class:`~metafetch.http.support.CancellationToken`; the base class
wires the token to the in-flight call so implementations only have to
perform the exchange itself.
"""
from typing import Any, Dict, FrozenSet, Optional

from .decoder import ResponseType
from .support import CancellationToken, run_cancellable
from .urls import get_full_url


class TransportRequest:
    """One outgoing call: everything a transport needs and nothing more."""

    def __init__(self, url: str, method: str = "GET", headers: Dict[str, str] = None, body: Any = None,
                 response_type: ResponseType = ResponseType.JSON, base_url: str = "", timeout: Optional[float] = None):
        self.url = url
        self.method = (method or "GET").upper()
        self.headers = dict(headers or {})
        self.body = body
        self.response_type = ResponseType.coerce(response_type)
        self.base_url = base_url or ""
        self.timeout = timeout

    @property
    def full_url(self) -> str:
        return get_full_url(self.base_url, self.url)

    def __repr__(self):
        return f"TransportRequest({self.method} {self.full_url}, response_type={self.response_type.value})"


class TransportResponse:
    """
    Response envelope.

    ``data`` holds the body decoded as the request's wire type, or for an
    error status the body parsed as JSON when possible and as text otherwise.
    """

    def __init__(self, status: int, status_text: str = "", headers: Any = None, data: Any = None, url: str = None):
        self.status = status
        self.status_text = status_text or ""
        self.headers = headers if headers is not None else {}
        self.data = data
        self.url = url

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def get_header(self, name: str, default: Any = None) -> Any:
        value = self.headers.get(name)
        if value is not None:
            return value
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    @property
    def content_type(self) -> str:
        return self.get_header("Content-Type", "")

    def with_data(self, data: Any) -> "TransportResponse":
        return TransportResponse(self.status, self.status_text, self.headers, data, self.url)

    def __repr__(self):
        return f"TransportResponse(status={self.status}, url={self.url!r})"


class Transport:
    """
    Base class for transports.

    Subclasses implement :meth:`_send` and list the response types they can
    read without help in ``native_response_types``; anything else is asked of
    them in its degraded form (see :class:`~metafetch.http.decoder.ResponseDecoder`).
    """

    native_response_types: FrozenSet[ResponseType] = frozenset(ResponseType)

    async def send(self, request: TransportRequest, token: Optional[CancellationToken] = None) -> TransportResponse:
        return await run_cancellable(self._send(request), token, config=request)

    async def _send(self, request: TransportRequest) -> TransportResponse:
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}()"
