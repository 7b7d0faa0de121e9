# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Signed header and presigned URL generation for S3 requests.

``S3Signer`` ties together the region, payload digest, credential store,
canonical request builder and SigV4 signer.  Its output is meant to be
used verbatim by the HTTP transport: headers must not be re-canonicalized
or reordered, and presigned URLs must not be re-encoded.
"""

from __future__ import annotations

import logging
import mimetypes
import posixpath
import urllib.parse
from collections.abc import Mapping
from datetime import datetime, timedelta
from enum import IntEnum
from typing import TYPE_CHECKING

from s3signer.canonical import (
    build_canonical_request,
    signed_headers_string,
    split_url,
    uri_encode,
)
from s3signer.credentials import CredentialStore
from s3signer.headers import HeaderMap
from s3signer.payload import UNSIGNED_PAYLOAD, Payload
from s3signer.region import Region
from s3signer.signing import (
    ALGORITHM,
    SigningDates,
    build_string_to_sign,
    credential_scope,
    derive_signing_key,
    sign,
)


if TYPE_CHECKING:
    from s3signer.config import SignerConfig


logger = logging.getLogger(__name__)

#: Longest lifetime SigV4 allows for a presigned URL.
MAX_EXPIRATION_SECONDS = 7 * 24 * 60 * 60

_DEFAULT_CONTENT_TYPE = "text/plain"

_LENGTH_METHODS = frozenset({"PUT", "DELETE"})


class Expiration(IntEnum):
    """Common presigned URL lifetimes, in seconds."""

    THIRTY_MINUTES = 30 * 60
    HOUR = 60 * 60
    SIX_HOURS = 6 * 60 * 60
    DAY = 24 * 60 * 60
    THREE_DAYS = 3 * 24 * 60 * 60
    WEEK = MAX_EXPIRATION_SECONDS


def expiration_seconds(expiration: int | timedelta) -> int:
    """Convert an expiration to the ``X-Amz-Expires`` value.

    Args:
        expiration: Seconds (``int`` or ``Expiration``) or a timedelta.

    Returns:
        Whole seconds.

    Raises:
        ValueError: If the value is not between 1 second and 7 days.
    """
    if isinstance(expiration, timedelta):
        seconds = int(expiration.total_seconds())
    elif isinstance(expiration, bool) or not isinstance(expiration, int):
        raise ValueError(f"Invalid expiration: {expiration!r}")
    else:
        seconds = int(expiration)
    if not 1 <= seconds <= MAX_EXPIRATION_SECONDS:
        raise ValueError(
            f"Expiration must be between 1 and {MAX_EXPIRATION_SECONDS} "
            f"seconds, got {seconds}"
        )
    return seconds


class SignedRequest:
    """Result of signing a request.

    ``headers`` is what the transport sends; the other attributes are
    kept for debugging signature mismatches.
    """

    __slots__ = (
        "headers",
        "canonical_request",
        "string_to_sign",
        "signature",
        "signed_headers",
    )

    def __init__(
        self,
        headers: HeaderMap,
        canonical_request: str,
        string_to_sign: str,
        signature: str,
        signed_headers: str,
    ) -> None:
        self.headers = headers
        self.canonical_request = canonical_request
        self.string_to_sign = string_to_sign
        self.signature = signature
        self.signed_headers = signed_headers


class S3Signer:
    """Produces SigV4 signed headers and presigned URLs.

    Args:
        credentials: Store providing the credentials for each call.
        region: Default region for requests that do not name one.
    """

    def __init__(
        self, credentials: CredentialStore, region: Region | None = None
    ) -> None:
        self.credentials = credentials
        self.region = region or Region()

    @classmethod
    def from_config(cls, config: SignerConfig) -> S3Signer:
        """Build a signer (and its credential store) from configuration."""
        if config.uses_role:
            assert config.role_name
            store = CredentialStore.from_role(
                config.role_name,
                interval=config.refresh_interval,
                metadata_url=config.metadata_url,
            )
        else:
            assert config.access_key and config.secret_key
            store = CredentialStore.static(
                config.access_key, config.secret_key, config.session_token
            )
        return cls(store, config.region)

    def close(self) -> None:
        """Stop background credential refresh."""
        self.credentials.close()

    # -----------------------------------------------------------------------
    # Header signing
    # -----------------------------------------------------------------------

    def headers(
        self,
        method: str,
        url: str,
        *,
        region: Region | None = None,
        headers: Mapping[str, str] | None = None,
        payload: Payload | None = None,
        now: datetime | None = None,
    ) -> HeaderMap:
        """Return the complete signed header set for a request.

        Args:
            method: HTTP method.
            url: Absolute request URL, or a path-style ``/bucket/key``
                resolved against the region endpoint.
            region: Region to sign for (defaults to the signer's region).
            headers: Extra headers to send and sign.
            payload: Request body (defaults to empty).
            now: Signing time (defaults to the current time).

        Returns:
            Headers including ``authorization``.

        Raises:
            InvalidURLError: If the URL is malformed.
            PayloadHashError: If the body cannot be hashed.
            MissingCredentialsError: If no credentials are available.
        """
        return self.sign_request(
            method,
            url,
            region=region,
            headers=headers,
            payload=payload,
            now=now,
        ).headers

    def sign_request(
        self,
        method: str,
        url: str,
        *,
        region: Region | None = None,
        headers: Mapping[str, str] | None = None,
        payload: Payload | None = None,
        now: datetime | None = None,
    ) -> SignedRequest:
        """Sign a request and return the intermediate signing values.

        Same arguments and errors as ``headers``.
        """
        method = method.upper()
        region = region or self.region
        url = region.resolve(url)
        payload = payload or Payload.empty()
        parts = split_url(url)
        dates = _dates(now)
        payload_hash = payload.hashed()
        credentials = self.credentials.current()

        signed = HeaderMap(headers or {})
        signed.pop("authorization", None)
        signed["host"] = parts.host
        signed["x-amz-date"] = dates.long
        signed["x-amz-content-sha256"] = payload_hash
        if credentials.session_token:
            signed["x-amz-security-token"] = credentials.session_token

        if method in _LENGTH_METHODS:
            size = payload.size()
            if size is not None:
                signed["content-length"] = str(size)
        if method == "PUT":
            if "content-type" not in signed:
                content_type = _guess_content_type(parts.path)
                if content_type:
                    signed["content-type"] = content_type
            if payload.is_bytes:
                signed["content-md5"] = payload.content_md5()

        scope = credential_scope(dates.short, region.name, region.service)
        canonical_request = build_canonical_request(
            method, url, signed, payload_hash
        )
        string_to_sign = build_string_to_sign(
            dates.long, scope, canonical_request
        )
        signature = sign(
            derive_signing_key(
                credentials.secret_key, dates.short, region.name, region.service
            ),
            string_to_sign,
        )
        signed_headers = signed_headers_string(signed)
        logger.debug(
            "Canonical request for %s %s:\n%s", method, url, canonical_request
        )

        signed["authorization"] = (
            f"{ALGORITHM} "
            f"Credential={credentials.access_key}/{scope}, "
            f"SignedHeaders={signed_headers}, "
            f"Signature={signature}"
        )
        return SignedRequest(
            signed, canonical_request, string_to_sign, signature, signed_headers
        )

    # -----------------------------------------------------------------------
    # Presigned URLs
    # -----------------------------------------------------------------------

    def presigned_url(
        self,
        method: str,
        url: str,
        expiration: int | timedelta,
        *,
        region: Region | None = None,
        headers: Mapping[str, str] | None = None,
        now: datetime | None = None,
    ) -> str:
        """Create a presigned URL that carries its own signature.

        Args:
            method: HTTP method the URL will be used with.
            url: Absolute object URL (may already have a query string),
                or a path-style ``/bucket/key`` on the region endpoint.
            expiration: Lifetime in seconds or as a timedelta (max 7 days).
            region: Region to sign for (defaults to the signer's region).
            headers: Extra headers the eventual request will send; they
                are signed and must be sent unchanged.
            now: Signing time (defaults to the current time).

        Returns:
            The URL with ``X-Amz-*`` query parameters and signature.

        Raises:
            InvalidURLError: If the URL is malformed.
            ValueError: If the expiration is out of range.
            MissingCredentialsError: If no credentials are available.
        """
        method = method.upper()
        region = region or self.region
        url = region.resolve(url)
        expires = expiration_seconds(expiration)
        parts = split_url(url)
        dates = _dates(now)
        credentials = self.credentials.current()

        signed = HeaderMap(headers or {})
        signed["host"] = parts.host
        signed_headers = signed_headers_string(signed)
        scope = credential_scope(dates.short, region.name, region.service)

        params = [
            ("X-Amz-Algorithm", ALGORITHM),
            ("X-Amz-Credential", f"{credentials.access_key}/{scope}"),
            ("X-Amz-Date", dates.long),
            ("X-Amz-Expires", str(expires)),
            ("X-Amz-SignedHeaders", signed_headers),
        ]
        if credentials.session_token:
            params.append(("X-Amz-Security-Token", credentials.session_token))
        query = "&".join(f"{k}={uri_encode(v)}" for k, v in params)

        base, _, fragment = url.partition("#")
        separator = "&" if parts.query else ("" if base.endswith("?") else "?")
        full_url = f"{base}{separator}{query}"

        canonical_request = build_canonical_request(
            method, full_url, signed, UNSIGNED_PAYLOAD
        )
        string_to_sign = build_string_to_sign(
            dates.long, scope, canonical_request
        )
        signature = sign(
            derive_signing_key(
                credentials.secret_key, dates.short, region.name, region.service
            ),
            string_to_sign,
        )
        logger.debug(
            "Canonical request for presigned %s %s:\n%s",
            method,
            url,
            canonical_request,
        )

        presigned = f"{full_url}&X-Amz-Signature={signature}"
        if fragment:
            presigned = f"{presigned}#{fragment}"
        return presigned


def _dates(now: datetime | None) -> SigningDates:
    if now is None:
        return SigningDates.now()
    return SigningDates.from_datetime(now)


def _guess_content_type(path: str) -> str | None:
    """Infer a content type from the URL path extension.

    Returns None when the path has no extension; unknown extensions
    fall back to ``text/plain``.
    """
    name = posixpath.basename(urllib.parse.unquote(path))
    _, ext = posixpath.splitext(name)
    if not ext:
        return None
    content_type, _ = mimetypes.guess_type(name, strict=False)
    return content_type or _DEFAULT_CONTENT_TYPE

