# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""SigV4 signing key derivation and signature computation.

Pure functions only; see ``s3signer.signer`` for the orchestration that
combines them with canonical requests and credentials.
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from datetime import UTC, datetime


ALGORITHM = "AWS4-HMAC-SHA256"

SCOPE_TERMINATOR = "aws4_request"

_LONG_DATE_FORMAT = "%Y%m%dT%H%M%SZ"
_SHORT_DATE_FORMAT = "%Y%m%d"


@dataclass(frozen=True)
class SigningDates:
    """Long and short date strings taken from a single instant.

    Attributes:
        long: ``YYYYMMDDTHHMMSSZ`` timestamp for ``x-amz-date``.
        short: ``YYYYMMDD`` date for the credential scope.
    """

    long: str
    short: str

    @classmethod
    def from_datetime(cls, when: datetime) -> SigningDates:
        """Derive both strings from one datetime.

        Naive datetimes are taken to be UTC.
        """
        if when.tzinfo is None:
            when = when.replace(tzinfo=UTC)
        else:
            when = when.astimezone(UTC)
        return cls(
            long=when.strftime(_LONG_DATE_FORMAT),
            short=when.strftime(_SHORT_DATE_FORMAT),
        )

    @classmethod
    def now(cls) -> SigningDates:
        """Dates for the current UTC time."""
        return cls.from_datetime(datetime.now(UTC))


def credential_scope(short_date: str, region: str, service: str) -> str:
    """Return ``date/region/service/aws4_request``."""
    return f"{short_date}/{region}/{service}/{SCOPE_TERMINATOR}"


def _hmac_sha256(key: bytes, msg: str | bytes) -> bytes:
    """HMAC-SHA256 helper."""
    if isinstance(msg, str):
        msg = msg.encode("utf-8")
    return hmac.new(key, msg, hashlib.sha256).digest()


def derive_signing_key(
    secret_key: str, short_date: str, region: str, service: str
) -> bytes:
    """Derive the SigV4 signing key.

    Args:
        secret_key: AWS secret access key.
        short_date: Date string (YYYYMMDD).
        region: Region identifier.
        service: Service name.

    Returns:
        Derived signing key bytes.
    """
    k_date = _hmac_sha256(("AWS4" + secret_key).encode("utf-8"), short_date)
    k_region = _hmac_sha256(k_date, region)
    k_service = _hmac_sha256(k_region, service)
    return _hmac_sha256(k_service, SCOPE_TERMINATOR)


def build_string_to_sign(
    long_date: str, scope: str, canonical_request: str
) -> str:
    """Build the SigV4 string to sign.

    Args:
        long_date: Timestamp (YYYYMMDDTHHMMSSZ).
        scope: Credential scope (date/region/service/aws4_request).
        canonical_request: The canonical request string.

    Returns:
        String to sign.
    """
    return "\n".join(
        [
            ALGORITHM,
            long_date,
            scope,
            hashlib.sha256(canonical_request.encode("utf-8")).hexdigest(),
        ]
    )


def sign(signing_key: bytes, string_to_sign: str) -> str:
    """Compute the lower-case hex SigV4 signature."""
    return hmac.new(
        signing_key, string_to_sign.encode("utf-8"), hashlib.sha256
    ).hexdigest()
