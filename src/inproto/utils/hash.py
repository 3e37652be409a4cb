# src/inproto/utils/hash.py
"""Hashing and encoding helpers shared by the relay and the client."""

from __future__ import annotations

import base64
import binascii
import hashlib


def b64url_encode(data: bytes) -> str:
    """Encode bytes as padded URL-safe base64 text."""
    return base64.urlsafe_b64encode(data).decode("ascii")


def b64url_decode(data: str) -> bytes:
    """Decode URL-safe base64, accepting omitted padding and the standard alphabet.

    Raises:
        ValueError: If ``data`` is not valid base64.
    """
    cleaned = data.strip().replace("+", "-").replace("/", "_")
    padding = "=" * (-len(cleaned.rstrip("=")) % 4)
    try:
        return base64.urlsafe_b64decode(cleaned.rstrip("=") + padding)
    except (binascii.Error, ValueError) as err:
        raise ValueError(f"Invalid base64 encoding: {err}") from err


def sha256_digest(data: bytes) -> bytes:
    """Return the raw SHA-256 digest of ``data``."""
    return hashlib.sha256(data).digest()


def sha256_hexdigest(text: str) -> str:
    """Return the SHA-256 hex digest of UTF-8 encoded ``text``."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def subscription_id(endpoint: str) -> str:
    """Return the stable binding identifier for a push endpoint."""
    return sha256_hexdigest(endpoint)
