"""Shared privacy helpers.

This module provides centralized handling of user-supplied content used across:
- Telemetry: pseudonymize client addresses and reduce text to counts
- Generation: bounded excerpts of the raw notes for the stub document

Raw notes and generated markdown must never reach logs; callers that need
to describe content should go through these helpers and log the result.
"""

from __future__ import annotations

import hashlib
import re

# Length of the hex prefix kept from the client hash (48 bits).
HASHED_CLIENT_ID_LENGTH = 12

_ALPHANUMERIC = re.compile(r"[A-Za-z0-9]")


def hash_client_id(client_id: str, salt: str) -> str:
    """Compute a salted, truncated hash of a client identifier.

    The salt keeps the hash from being reversed with a precomputed table of
    addresses while staying stable across requests from the same client.

    Args:
        client_id: The network-derived client identifier.
        salt: Salt value (TELEMETRY_SALT in production).

    Returns:
        The first 12 hex characters of SHA256("salt:client_id").
    """
    digest = hashlib.sha256(f"{salt}:{client_id}".encode("utf-8")).hexdigest()
    return digest[:HASHED_CLIENT_ID_LENGTH]


def count_meaningful_chars(text: str) -> int:
    """Count ASCII letters and digits in ``text``."""
    return len(_ALPHANUMERIC.findall(text))


def excerpt_text(text: str, max_length: int = 700) -> str:
    """Return the first ``max_length`` characters of the trimmed text.

    A trailing ellipsis on its own line marks that the excerpt was cut.
    """
    trimmed = text.strip()
    if len(trimmed) <= max_length:
        return trimmed
    return f"{trimmed[:max_length]}\n…"
