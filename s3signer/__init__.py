# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""AWS Signature Version 4 signing for S3-compatible object storage.

Provides:
- Signed request headers and presigned URLs (S3Signer)
- Static and IAM-role credential stores (CredentialStore)
- Canonical request and signing primitives (canonical, signing)
- YAML configuration loading (SignerConfig)
"""

from s3signer.config import ConfigError, SignerConfig
from s3signer.credentials import (
    CredentialRefresher,
    Credentials,
    CredentialStore,
)
from s3signer.errors import (
    InvalidURLError,
    MissingCredentialsError,
    PayloadHashError,
    SignerError,
)
from s3signer.headers import HeaderMap
from s3signer.payload import Payload
from s3signer.region import Region
from s3signer.signer import Expiration, S3Signer, SignedRequest


__all__ = [
    "ConfigError",
    "CredentialRefresher",
    "CredentialStore",
    "Credentials",
    "Expiration",
    "HeaderMap",
    "InvalidURLError",
    "MissingCredentialsError",
    "Payload",
    "PayloadHashError",
    "Region",
    "S3Signer",
    "SignedRequest",
    "SignerConfig",
    "SignerError",
]
