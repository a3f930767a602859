"""
Compression codec for draw.io diagram payloads.

draw.io stores the body of a ``<diagram>`` element as
``base64(deflate_raw(encodeURIComponent(xml)))``.  Older files (and some
third-party exporters) use a zlib header instead of raw deflate, so decoding
tries both.
"""

from __future__ import annotations

import base64
import binascii
import logging
import zlib
from urllib.parse import quote, unquote

logger = logging.getLogger("drawio-codec.compression")

# Characters encodeURIComponent leaves untouched (besides alphanumerics and _-).
_URI_SAFE = "~()*!.'"

GRAPH_MODEL_TAG = "<mxGraphModel"


class DecodeError(Exception):
    """Raised when a compressed payload cannot be inflated."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


def is_compressed(payload: str) -> bool:
    """Whether *payload* is an encoded diagram body rather than plain XML."""
    stripped = payload.strip()
    return bool(stripped) and not stripped.startswith("<") and GRAPH_MODEL_TAG not in stripped


def _inflate_raw(data: bytes) -> bytes:
    inflater = zlib.decompressobj(-zlib.MAX_WBITS)
    out = inflater.decompress(data) + inflater.flush()
    if not inflater.eof:
        raise zlib.error("incomplete raw deflate stream")
    return out


def _deflate_raw(data: bytes) -> bytes:
    compressor = zlib.compressobj(
        zlib.Z_DEFAULT_COMPRESSION,
        zlib.DEFLATED,
        -zlib.MAX_WBITS,
        memLevel=8,
        strategy=zlib.Z_DEFAULT_STRATEGY,
    )
    return compressor.compress(data) + compressor.flush()


def decode(payload: str) -> str:
    """Decode a draw.io diagram payload into plain mxGraphModel XML.

    Raises:
        DecodeError: if the payload is not base64, or neither raw deflate nor
            zlib-framed inflate accepts it.
    """
    try:
        raw = base64.b64decode(payload.strip())
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"Payload is not valid base64: {exc}") from exc

    try:
        inflated = _inflate_raw(raw)
    except zlib.error as raw_exc:
        logger.warning("Raw inflate failed (%s), trying zlib framing", raw_exc)
        try:
            inflated = zlib.decompress(raw)
        except zlib.error as exc:
            raise DecodeError(
                f"Payload could not be inflated (raw: {raw_exc}; zlib: {exc})"
            ) from exc

    try:
        text = inflated.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError(f"Inflated payload is not UTF-8: {exc}") from exc
    return unquote(text)


def encode(text: str) -> str:
    """Encode plain XML as a draw.io diagram payload (inverse of :func:`decode`)."""
    quoted = quote(text, safe=_URI_SAFE)
    return base64.b64encode(_deflate_raw(quoted.encode("utf-8"))).decode("ascii")
