"""Client identity extraction.

The identity is the client's source address, preferring proxy headers set by
a trusted reverse proxy over the raw connection address.
"""

from __future__ import annotations

from typing import Mapping

from starlette.requests import Request

REAL_IP_HEADER = "x-real-ip"
FORWARDED_FOR_HEADER = "x-forwarded-for"
UNKNOWN_IDENTITY = "unknown"


def _header(headers: Mapping[str, str], name: str) -> str:
    value = headers.get(name)
    if value is None:
        # Plain dicts are case-sensitive; Starlette Headers already are not.
        for key, candidate in headers.items():
            if key.lower() == name:
                value = candidate
                break
    return (value or "").strip()


def extract_client_identity(
    headers: Mapping[str, str],
    remote_addr: str | None,
    *,
    trust_forwarded: bool = True,
) -> str:
    """Return the client identity for a request.

    First match wins: ``X-Real-IP``, then the leftmost ``X-Forwarded-For``
    entry, then the connection address. Blank values count as absent.

    Args:
        headers: Request headers.
        remote_addr: Address of the peer that opened the connection.
        trust_forwarded: Whether proxy headers may override the peer address.

    Returns:
        Non-empty identity string (``"unknown"`` if nothing is available).

    Examples:
        >>> extract_client_identity({"X-Real-IP": "9.9.9.9"}, "10.0.0.1")
        '9.9.9.9'
        >>> extract_client_identity({"X-Forwarded-For": "5.5.5.5, 10.0.0.2"}, "10.0.0.1")
        '5.5.5.5'
        >>> extract_client_identity({}, "10.0.0.1")
        '10.0.0.1'
    """
    if trust_forwarded:
        real_ip = _header(headers, REAL_IP_HEADER)
        if real_ip:
            return real_ip

        forwarded_for = _header(headers, FORWARDED_FOR_HEADER)
        first_hop = forwarded_for.split(",", 1)[0].strip()
        if first_hop:
            return first_hop

    remote = (remote_addr or "").strip()
    return remote or UNKNOWN_IDENTITY


def identity_from_request(request: Request, *, trust_forwarded: bool = True) -> str:
    """Extract the client identity from a Starlette/FastAPI request."""

    remote_addr = request.client.host if request.client else None
    return extract_client_identity(
        request.headers,
        remote_addr,
        trust_forwarded=trust_forwarded,
    )
