# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""SigV4 canonical request construction for S3.

Every function here is pure and must produce byte-identical output to
what the service computes; a single differing character surfaces only
as a ``SignatureDoesNotMatch`` from the server.

S3 canonicalization differs from the other AWS services in two ways:
the path is URI-encoded once (no double encoding) and it is not
normalized (``//``, ``.`` and ``..`` segments are kept as-is).
"""

from __future__ import annotations

import urllib.parse
from collections.abc import Mapping
from dataclasses import dataclass

from s3signer.errors import InvalidURLError
from s3signer.headers import HeaderMap


_AWS_UNRESERVED = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_.~"
)

_DEFAULT_PORTS = {"http": 80, "https": 443}


# ---------------------------------------------------------------------------
# URL parsing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SplitURL:
    """The parts of an absolute URL that take part in signing.

    Attributes:
        scheme: ``http`` or ``https``.
        host: Value for the ``host`` header (lower-cased, with the port
            only when it is not the scheme default).
        path: Raw path, possibly percent-encoded.
        query: Raw query string without the leading ``?``.
    """

    scheme: str
    host: str
    path: str
    query: str


def split_url(url: str) -> SplitURL:
    """Split an absolute URL for signing.

    Args:
        url: Absolute ``http``/``https`` URL.

    Returns:
        SplitURL with the host header value, path and query.

    Raises:
        InvalidURLError: If the URL has no scheme or host, uses an
            unsupported scheme or carries an invalid port.
    """
    if not isinstance(url, str) or not url:
        raise InvalidURLError(f"Invalid URL: {url!r}")
    try:
        parts = urllib.parse.urlsplit(url)
        port = parts.port
    except ValueError as e:
        raise InvalidURLError(f"Invalid URL {url!r}: {e}") from e

    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS:
        raise InvalidURLError(f"Invalid URL {url!r}: unsupported scheme")
    if not parts.hostname:
        raise InvalidURLError(f"Invalid URL {url!r}: missing host")
    if any(ch.isspace() for ch in url):
        raise InvalidURLError(f"Invalid URL {url!r}: contains whitespace")

    # Keep IPv6 brackets; drop any userinfo
    host = parts.netloc.rpartition("@")[2].lower()
    if port is not None:
        host = host.rsplit(":", 1)[0]
        if port != _DEFAULT_PORTS[scheme]:
            host = f"{host}:{port}"

    return SplitURL(
        scheme=scheme, host=host, path=parts.path, query=parts.query
    )


# ---------------------------------------------------------------------------
# URI encoding (AWS-specific RFC 3986 subset)
# ---------------------------------------------------------------------------


def uri_encode(value: str, *, encode_slash: bool = True) -> str:
    """URI-encode a value using AWS's specific rules.

    - Unreserved characters are not encoded: A-Z, a-z, 0-9, -, _, ., ~
    - Everything else is UTF-8 encoded and emitted as %XX (uppercase hex)
    - Forward slashes (/) are optionally preserved

    Args:
        value: String to encode.
        encode_slash: If True, encode '/'; if False, preserve '/'.

    Returns:
        URI-encoded string.
    """
    result: list[str] = []
    for ch in value:
        if ch in _AWS_UNRESERVED:
            result.append(ch)
        elif ch == "/" and not encode_slash:
            result.append("/")
        else:
            result.extend(f"%{b:02X}" for b in ch.encode("utf-8"))
    return "".join(result)


# ---------------------------------------------------------------------------
# Canonical request construction
# ---------------------------------------------------------------------------


def canonical_uri(path: str) -> str:
    """Build the canonical URI from a request path.

    The path may arrive already percent-encoded.  It is decoded first and
    then encoded exactly once, so ``%3A`` stays ``%3A`` and a literal
    space becomes ``%20``.

    Args:
        path: Request path, possibly percent-encoded.

    Returns:
        URI-encoded canonical path; ``/`` for an empty path.
    """
    if not path:
        return "/"
    return uri_encode(urllib.parse.unquote(path), encode_slash=False)


def canonical_query_string(query: str) -> str:
    """Build the canonical query string.

    Parameters are split on ``&``; names and values are decoded and then
    URI-encoded independently, sorted by encoded name then value.  A
    parameter without ``=`` (e.g. ``?acl``) gets an empty value.

    Args:
        query: Raw query string (without leading ?).

    Returns:
        Canonical query string, empty when there is no query.
    """
    if not query:
        return ""

    encoded: list[tuple[str, str]] = []
    for pair in query.split("&"):
        if not pair:
            continue
        name, _, value = pair.partition("=")
        encoded.append(
            (
                uri_encode(urllib.parse.unquote(name)),
                uri_encode(urllib.parse.unquote(value)),
            )
        )
    encoded.sort()

    return "&".join(f"{k}={v}" for k, v in encoded)


def _normalize_value(value: str) -> str:
    """Trim a header value and collapse inner whitespace runs."""
    return " ".join(value.split())


def canonical_headers_string(headers: Mapping[str, str]) -> str:
    """Build the canonical headers block.

    Args:
        headers: Headers to sign (any key case).

    Returns:
        ``name:value`` lines, each newline-terminated, sorted by
        lower-cased name.
    """
    lower = dict(HeaderMap(headers).lower_items())
    return "".join(
        f"{name}:{_normalize_value(lower[name])}\n" for name in sorted(lower)
    )


def signed_headers_string(headers: Mapping[str, str]) -> str:
    """Return the sorted, semicolon-joined lower-cased header names."""
    names = (name for name, _ in HeaderMap(headers).lower_items())
    return ";".join(sorted(names))


def build_canonical_request(
    method: str,
    url: str,
    headers: Mapping[str, str],
    payload_hash: str,
) -> str:
    """Build the canonical request string.

    All given headers are signed, so ``headers`` must already contain
    ``host`` and ``x-amz-date`` (or their presigned query equivalents).

    Args:
        method: HTTP method.
        url: Absolute request URL including any query string.
        headers: Headers to sign.
        payload_hash: Hex SHA-256 of the body or ``UNSIGNED-PAYLOAD``.

    Returns:
        Canonical request string.

    Raises:
        InvalidURLError: If the URL is malformed.
    """
    parts = split_url(url)

    return "\n".join(
        [
            method.upper(),
            canonical_uri(parts.path),
            canonical_query_string(parts.query),
            canonical_headers_string(headers),
            signed_headers_string(headers),
            payload_hash,
        ]
    )
