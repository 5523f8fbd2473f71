"""Payload text encoding.

The payload is treated as opaque bytes. It is base64-encoded with the standard
alphabet (padding kept, no line wrapping) so it can be embedded in JS string
literals. Optionally the bytes are zlib-compressed first; that is the format
``DecompressionStream('deflate')`` expects on the JS side.
"""

import base64
import binascii
import zlib


class EncodingError(ValueError):
    """Raised when encoded payload text cannot be decoded."""


_COMPRESS_LEVEL: int = 9


def encode_payload(data: bytes, *, compress: bool = False) -> str:
    """Encode payload bytes into base64 text.

    :param data: Raw payload bytes.
    :param compress: Deflate the bytes before encoding.
    :returns: Base64 text (ASCII only).
    """

    raw: bytes = data
    if compress is True:
        raw = zlib.compress(data, _COMPRESS_LEVEL)
    return base64.b64encode(raw).decode("ascii")


def decode_payload(text: str, *, compressed: bool = False) -> bytes:
    """Decode text produced by :func:`encode_payload`.

    :param text: Base64 text.
    :param compressed: Whether the text was produced with ``compress=True``.
    :returns: Original payload bytes.
    :raises EncodingError: If the text is not valid base64 or deflate data.
    """

    try:
        raw: bytes = base64.b64decode(text.encode("ascii"), validate=True)
    except (UnicodeEncodeError, binascii.Error) as e:
        raise EncodingError(f"Payload text is not valid base64: {e}") from e

    if compressed is False:
        return raw

    try:
        return zlib.decompress(raw)
    except zlib.error as e:
        raise EncodingError(f"Payload text is not valid deflate data: {e}") from e
