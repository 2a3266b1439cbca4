import logging
from typing import Any, Dict

import httpx

from .decoder import ResponseDecoder, ResponseType
from .exceptions import NetworkError, RequestTimeoutError, error_for_status
from .support import Blob, FormData
from .transport import Transport, TransportRequest, TransportResponse

logger = logging.getLogger(__name__)


class HttpxTransport(Transport):
    """
    Library-backed transport on top of ``httpx``, shaped like axios.

    Non-2xx answers raise :class:`~metafetch.http.exceptions.ClientError` or
    :class:`~metafetch.http.exceptions.ServerError` carrying the partial
    response. It has no document or form reader: those are requested as text
    and blob and rebuilt by the decoder.
    """

    native_response_types = frozenset({
        ResponseType.JSON,
        ResponseType.TEXT,
        ResponseType.BLOB,
        ResponseType.ARRAYBUFFER,
    })

    def __init__(self, client: httpx.AsyncClient = None, **client_kwargs):
        """
        Args:
            client: A client to issue every request with. Without one a
                    short-lived client is opened per request.
            client_kwargs: Passed to ``httpx.AsyncClient`` for those
                           short-lived clients, e.g. ``transport=`` in tests.
                           httpx applies no timeout of its own unless one is
                           given here; the request ``timeout`` option bounds
                           each attempt.
        """
        self.client = client
        client_kwargs.setdefault("timeout", None)
        self.client_kwargs = client_kwargs

    async def _send(self, request: TransportRequest) -> TransportResponse:
        if self.client is not None:
            return await self._exchange(self.client, request)
        async with httpx.AsyncClient(**self.client_kwargs) as client:
            return await self._exchange(client, request)

    async def _exchange(self, client: httpx.AsyncClient, request: TransportRequest) -> TransportResponse:
        url = request.full_url
        logger.debug("httpx %s %s", request.method, url)
        try:
            response = await client.request(
                request.method,
                url,
                headers=request.headers,
                **self._prepare_body(request.body),
            )
        except httpx.TimeoutException as e:
            raise RequestTimeoutError({
                "message": f"timeout of request to {url} exceeded",
                "code": "ECONNABORTED",
                "config": request,
                "request": request,
                "phase": "request",
                "original_error": e,
            }) from e
        except httpx.RequestError as e:
            raise NetworkError({
                "message": f"Network Error: {e}",
                "config": request,
                "request": request,
                "phase": "request",
                "original_error": e,
            }) from e

        content_type = response.headers.get("content-type")
        envelope = TransportResponse(response.status_code, response.reason_phrase, response.headers, None, str(response.url))
        if not envelope.ok:
            envelope.data = ResponseDecoder.parse_json(response.content, response.encoding)
            raise error_for_status(envelope, request)

        envelope.data = ResponseDecoder.decode(response.content, request.response_type, content_type, response.encoding)
        return envelope

    @staticmethod
    def _prepare_body(body: Any) -> Dict[str, Any]:
        if body is None:
            return {}
        if isinstance(body, FormData):
            # Passing every field through files forces multipart encoding
            files = []
            for name, value in body:
                if isinstance(value, Blob):
                    files.append((name, (value.filename or "blob", value.content, value.content_type or None)))
                else:
                    files.append((name, (None, value.encode("utf-8"))))
            return {"files": files}
        return {"content": body}
