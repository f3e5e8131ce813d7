"""Client address resolution."""

from __future__ import annotations

from collections.abc import Mapping

UNKNOWN_CLIENT = "unknown"


def resolve_client_key(headers: Mapping[str, str], peer_host: str | None) -> str:
    """Key a client by the first X-Forwarded-For hop, then the peer address.

    Falls back to ``"unknown"`` so clients without an address share one bucket.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if peer_host:
        return peer_host
    return UNKNOWN_CLIENT
