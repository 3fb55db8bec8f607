"""
Encodes raw file bytes as self-describing data URLs and back.

The persisted form of every payload is ``data:<mime>;base64,<payload>``.
"""

import base64
import binascii
import re

from nepaltools.exceptions import InvalidDataUrlError

DEFAULT_MIME_TYPE = "application/octet-stream"

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]*)(?P<params>(?:;[^;,]*)*?);base64,")


def encode_data_url(data: bytes, mime_type: str) -> str:
    """Encodes bytes into a base64 data URL carrying the given mime type."""
    payload = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type or DEFAULT_MIME_TYPE};base64,{payload}"


def _split(data_url: str) -> tuple[str, str]:
    match = _DATA_URL_RE.match(data_url)
    if not match:
        raise InvalidDataUrlError("Payload is not a base64 data URL.")
    mime_type = match.group("mime") or DEFAULT_MIME_TYPE
    return mime_type, data_url[match.end() :]


def decode_data_url(data_url: str) -> tuple[str, bytes]:
    """
    Decodes a base64 data URL.

    Returns:
        A tuple of (mime_type, raw bytes).

    Raises:
        InvalidDataUrlError: If the header or the base64 payload is malformed.
    """
    mime_type, payload = _split(data_url)
    try:
        return mime_type, base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidDataUrlError(f"Invalid base64 payload: {e}") from e


def decoded_size(data_url: str) -> int:
    """Computes the decoded byte length of a data URL without decoding it."""
    _, payload = _split(data_url)
    if not payload:
        return 0
    padding = len(payload) - len(payload.rstrip("="))
    return (len(payload) * 3) // 4 - padding
