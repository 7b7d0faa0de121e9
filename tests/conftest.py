# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures."""

from collections.abc import Iterator

import pytest

from s3signer.credentials import CredentialStore
from s3signer.logging import SecretFilter
from s3signer.region import Region
from s3signer.signer import S3Signer
from tests.vectors import ACCESS_KEY, SECRET_KEY


@pytest.fixture(autouse=True)
def _clear_secrets() -> Iterator[None]:
    """Keep registered secrets from leaking between tests."""
    SecretFilter.clear_secrets()
    yield
    SecretFilter.clear_secrets()


@pytest.fixture
def static_store() -> CredentialStore:
    """Store holding the AWS documentation example credentials."""
    return CredentialStore.static(ACCESS_KEY, SECRET_KEY)


@pytest.fixture
def signer(static_store: CredentialStore) -> S3Signer:
    """Signer for us-east-1 with the documentation credentials."""
    return S3Signer(static_store, Region("us-east-1"))
