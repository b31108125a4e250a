"""Text-safe binary helpers for WebAuthn wire payloads."""
from __future__ import annotations

import binascii
import re
from typing import Any

from fido2.utils import websafe_decode, websafe_encode

__all__ = [
    "convert_bytes_for_json",
    "decode_binary_value",
    "encode_binary_value",
]

_WEBSAFE_PATTERN = re.compile(r"^[A-Za-z0-9_-]*={0,2}$")


def decode_binary_value(value: Any) -> bytes:
    """Decode an unpadded (or padded) base64url value into raw bytes."""

    if value is None:
        raise ValueError("missing binary value")

    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)

    if not isinstance(value, str):
        raise ValueError("unsupported binary value type")

    candidate = value.strip()
    if not candidate:
        raise ValueError("empty string")
    if not _WEBSAFE_PATTERN.match(candidate):
        raise ValueError("value is not base64url encoded")

    try:
        return websafe_decode(candidate)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("invalid binary value") from exc


def encode_binary_value(value: Any) -> str:
    """Encode raw bytes as unpadded base64url."""

    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise ValueError("unsupported binary value type")
    return websafe_encode(bytes(value))


def convert_bytes_for_json(obj: Any) -> Any:
    """Recursively convert bytes-like objects to base64url strings."""

    if isinstance(obj, (bytes, bytearray, memoryview)):
        return encode_binary_value(obj)
    if isinstance(obj, dict):
        return {k: convert_bytes_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [convert_bytes_for_json(item) for item in obj]
    return obj
