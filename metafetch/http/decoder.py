"""
Response decoding.

A request asks for one of six response types. Transports read some of them
natively and degrade the rest to a primitive they can read (a document arrives
as text, a form as a blob). :class:`ResponseDecoder` owns both halves of that
indirection: :meth:`ResponseDecoder.wire_type` picks what the transport reads,
:meth:`ResponseDecoder.upcast` turns it back into what the caller asked for.
"""
import json
import logging
from email.parser import BytesParser
from email.policy import HTTP
from enum import Enum
from typing import Any, Iterable, Optional, Union
from urllib.parse import parse_qsl

import lxml.html
from lxml import etree

from .support import Blob, FormData

logger = logging.getLogger(__name__)


class ResponseType(str, Enum):
    JSON = "json"
    TEXT = "text"
    BLOB = "blob"
    ARRAYBUFFER = "arraybuffer"
    DOCUMENT = "document"
    FORM = "form"

    @classmethod
    def coerce(cls, value: Union[str, "ResponseType", None]) -> "ResponseType":
        if value is None:
            return cls.JSON
        try:
            return cls(value)
        except ValueError:
            raise ValueError(
                f"Unknown response type '{value}', expected one of {[t.value for t in cls]}"
            ) from None


# What a type degrades to when the transport cannot read it directly
_DOWNGRADES = {
    ResponseType.DOCUMENT: ResponseType.TEXT,
    ResponseType.FORM: ResponseType.BLOB,
}


def _media_type(content_type: Optional[str]) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


class ResponseDecoder:

    @staticmethod
    def wire_type(requested: Union[str, ResponseType], native_types: Iterable[ResponseType]) -> ResponseType:
        requested = ResponseType.coerce(requested)
        if requested in native_types:
            return requested
        return _DOWNGRADES.get(requested, requested)

    @staticmethod
    def decode_text(body: bytes, encoding: Optional[str] = None) -> str:
        if isinstance(body, str):
            return body
        text = bytes(body or b"").decode(encoding or "utf-8", errors="replace")
        return text.lstrip("\ufeff")

    @staticmethod
    def parse_json(body: Union[bytes, str], encoding: Optional[str] = None) -> Any:
        """
        Structured parse that never raises: the body as JSON, else its text as
        JSON, else the text itself.
        """
        try:
            return json.loads(body)
        except (ValueError, TypeError):
            pass
        text = ResponseDecoder.decode_text(body, encoding)
        try:
            return json.loads(text)
        except ValueError:
            return text

    @staticmethod
    def parse_document(text: str):
        """Parse markup into an lxml document; None when there is nothing to parse."""
        if not text or not text.strip():
            return None
        try:
            return lxml.html.document_fromstring(text)
        except etree.ParserError as e:
            logger.debug("Could not parse document response: %s", e)
            return None

    @staticmethod
    def parse_form(body: bytes, content_type: Optional[str] = None) -> FormData:
        """
        Rebuild a field set from a raw body: multipart via the standard email
        parser, url-encoded via ``parse_qsl``, a JSON object field by field.
        """
        media_type = _media_type(content_type)
        if media_type.startswith("multipart/"):
            return ResponseDecoder._parse_multipart(body, content_type)

        text = ResponseDecoder.decode_text(body)
        if media_type.endswith("json"):
            value = ResponseDecoder.parse_json(text)
            if isinstance(value, dict):
                return FormData({k: v for k, v in value.items() if v is not None})
        return FormData(parse_qsl(text, keep_blank_values=True))

    @staticmethod
    def _parse_multipart(body: bytes, content_type: str) -> FormData:
        head = f"Content-Type: {content_type}\r\n\r\n".encode("latin-1")
        message = BytesParser(policy=HTTP).parsebytes(head + bytes(body))

        form = FormData()
        if not message.is_multipart():
            return form

        for part in message.iter_parts():
            name = part.get_param("name", header="content-disposition")
            if name is None:
                continue
            payload = part.get_payload(decode=True) or b""
            filename = part.get_filename()
            part_type = part.get_content_type() if "content-type" in part else "text/plain"
            if filename or not part_type.startswith("text/"):
                form.append(name, Blob(payload, part_type, filename))
            else:
                form.append(name, payload.decode(part.get_content_charset("utf-8"), errors="replace"))
        return form

    @classmethod
    def decode(cls, body: bytes, response_type: Union[str, ResponseType], content_type: Optional[str] = None,
               encoding: Optional[str] = None) -> Any:
        """Decode a raw body straight into ``response_type``."""
        response_type = ResponseType.coerce(response_type)
        if response_type is ResponseType.JSON:
            return cls.parse_json(body, encoding)
        if response_type is ResponseType.TEXT:
            return cls.decode_text(body, encoding)
        if response_type is ResponseType.BLOB:
            return Blob(body, content_type or "")
        if response_type is ResponseType.ARRAYBUFFER:
            return bytes(body)
        if response_type is ResponseType.DOCUMENT:
            return cls.parse_document(cls.decode_text(body, encoding))
        return cls.parse_form(body, content_type)

    @classmethod
    def upcast(cls, value: Any, requested: Union[str, ResponseType], content_type: Optional[str] = None) -> Any:
        """Re-derive the requested type from what a degraded read produced."""
        requested = ResponseType.coerce(requested)
        if requested is ResponseType.DOCUMENT and isinstance(value, str):
            return cls.parse_document(value)
        if requested is ResponseType.FORM:
            if isinstance(value, Blob):
                return cls.parse_form(value.content, value.content_type or content_type)
            if isinstance(value, (bytes, bytearray)):
                return cls.parse_form(bytes(value), content_type)
        return value
