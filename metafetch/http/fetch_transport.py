import asyncio
import logging
from typing import Any

import aiohttp
from aiohttp import hdrs

from .decoder import ResponseDecoder, ResponseType
from .exceptions import NetworkError, RequestTimeoutError
from .support import Blob, FormData
from .transport import Transport, TransportRequest, TransportResponse

logger = logging.getLogger(__name__)


class FetchTransport(Transport):
    """
    The native transport, shaped like the browser ``fetch`` API.

    Any status is a response: non-2xx answers come back as an envelope with
    ``ok`` false and their body parsed as JSON or text, and the caller decides
    what that means. Only failures to get an answer at all raise. Multipart
    form bodies are read natively; documents arrive as text.
    """

    native_response_types = frozenset({
        ResponseType.JSON,
        ResponseType.TEXT,
        ResponseType.BLOB,
        ResponseType.ARRAYBUFFER,
        ResponseType.FORM,
    })

    def __init__(self, session: aiohttp.ClientSession = None, **session_kwargs):
        """
        Args:
            session: A session to issue every request on. Without one a
                     short-lived session is opened per request.
            session_kwargs: Passed to ``aiohttp.ClientSession`` for those
                            short-lived sessions. They carry no timeout of
                            their own unless one is given here; the request
                            ``timeout`` option bounds each attempt.
        """
        self.session = session
        session_kwargs.setdefault("timeout", aiohttp.ClientTimeout(total=None))
        self.session_kwargs = session_kwargs

    async def _send(self, request: TransportRequest) -> TransportResponse:
        if self.session is not None:
            return await self._exchange(self.session, request)
        async with aiohttp.ClientSession(**self.session_kwargs) as session:
            return await self._exchange(session, request)

    async def _exchange(self, session: aiohttp.ClientSession, request: TransportRequest) -> TransportResponse:
        url = request.full_url
        logger.debug("fetch %s %s", request.method, url)
        try:
            async with session.request(
                    request.method,
                    url,
                    headers=request.headers,
                    data=self._prepare_body(request.body),
            ) as resp:
                if 200 <= resp.status < 300:
                    data = await self._read_body(resp, request.response_type)
                else:
                    data = ResponseDecoder.parse_json(await resp.read(), resp.charset)
                return TransportResponse(resp.status, resp.reason or "", resp.headers, data, str(resp.url))
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError({
                "message": f"Timeout while fetching {url}",
                "config": request,
                "request": request,
                "phase": "request",
                "original_error": e,
            }) from e
        except aiohttp.ClientError as e:
            raise NetworkError({
                "message": f"Network Error: {e}",
                "config": request,
                "request": request,
                "phase": "request",
                "original_error": e,
            }) from e

    @staticmethod
    def _prepare_body(body: Any) -> Any:
        if not isinstance(body, FormData):
            return body

        # Every field carries a content type so aiohttp always encodes multipart
        form = aiohttp.FormData()
        for name, value in body:
            if isinstance(value, Blob):
                form.add_field(
                    name,
                    value.content,
                    filename=value.filename or "blob",
                    content_type=value.content_type or "application/octet-stream",
                )
            else:
                form.add_field(name, value, content_type="text/plain; charset=utf-8")
        return form

    async def _read_body(self, resp: aiohttp.ClientResponse, response_type: ResponseType) -> Any:
        if response_type is ResponseType.FORM:
            return await self._read_form(resp)
        body = await resp.read()
        return ResponseDecoder.decode(body, response_type, resp.headers.get(hdrs.CONTENT_TYPE), resp.charset)

    @staticmethod
    async def _read_form(resp: aiohttp.ClientResponse) -> FormData:
        if not resp.content_type.startswith("multipart/"):
            return ResponseDecoder.parse_form(await resp.read(), resp.headers.get(hdrs.CONTENT_TYPE))

        form = FormData()
        reader = aiohttp.MultipartReader(resp.headers, resp.content)
        while True:
            part = await reader.next()
            if part is None:
                break
            if not isinstance(part, aiohttp.BodyPartReader) or part.name is None:
                await part.release()
                continue

            payload = bytes(await part.read(decode=True))
            part_type = part.headers.get(hdrs.CONTENT_TYPE, "text/plain")
            if part.filename or not part_type.startswith("text/"):
                form.append(part.name, Blob(payload, part_type.split(";", 1)[0], part.filename))
            else:
                form.append(part.name, payload.decode(part.get_charset("utf-8"), errors="replace"))
        return form
