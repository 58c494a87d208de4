"""Data URL encoding and decoding for captured images."""
import base64
import binascii

from deckshot.core.config import settings
from deckshot.schemas.upload import DecodedBlob
from deckshot.services.error_handling import MalformedInput

DATA_URL_SCHEME = "data:"
BASE64_MARKER = ";base64"


def decode_data_url(encoded: str) -> DecodedBlob:
    """
    Decode a ``data:<mime>;base64,<body>`` string into bytes and a MIME type.

    A prefix without a media type (``data:;base64,...``) falls back to the
    configured default MIME type.

    Raises:
        MalformedInput: if the prefix cannot be parsed or the body is not base64.
    """
    if not isinstance(encoded, str):
        raise MalformedInput(f"Expected a data URL string, got {type(encoded).__name__}")

    header, separator, body = encoded.partition(",")
    if not separator:
        raise MalformedInput("Data URL is missing the ',' separator")
    if not header.startswith(DATA_URL_SCHEME):
        raise MalformedInput("Data URL must start with 'data:'")

    metadata = header[len(DATA_URL_SCHEME):]
    if not metadata.endswith(BASE64_MARKER):
        raise MalformedInput("Only base64 data URLs are supported")

    # Parameters such as charset sit between the media type and the marker
    mime_type = metadata[:-len(BASE64_MARKER)].split(";", 1)[0].strip()

    try:
        data = base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedInput(f"Data URL body is not valid base64: {e}") from e

    return DecodedBlob(data=data, mime_type=mime_type or settings.DEFAULT_MIME_TYPE)


def decoded_size(encoded: str) -> int:
    """Byte size of the payload behind a data URL."""
    return decode_data_url(encoded).size


def encode_data_url(data: bytes, mime_type: str = None) -> str:
    """Encode raw bytes as a base64 data URL."""
    body = base64.b64encode(data).decode("ascii")
    return f"{DATA_URL_SCHEME}{mime_type or settings.DEFAULT_MIME_TYPE}{BASE64_MARKER},{body}"
