"""Portable text encoding for recap video buffers (base64 data URLs)."""

import base64
import binascii


def encode_data_url(buffer: bytes, mime_type: str = "video/webm") -> str:
    """Encode bytes as ``data:<mime>;base64,<payload>``."""
    payload = base64.b64encode(buffer).decode("ascii")
    return f"data:{mime_type};base64,{payload}"


def decode_data_url(data_url: str) -> bytes:
    """Decode a base64 data URL (or bare base64 string) back to bytes.

    Raises ValueError on malformed input.
    """
    payload = data_url
    if data_url.startswith("data:"):
        # data:video/webm;base64,GkXfo...
        header, sep, payload = data_url.partition(",")
        if not sep or ";base64" not in header:
            raise ValueError("Not a base64 data URL")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e
