# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Exception types raised by the signing engine."""


class SignerError(Exception):
    """Base exception for request signing failures."""


class InvalidURLError(SignerError):
    """The URL to sign is malformed (missing scheme or host, bad port)."""


class PayloadHashError(SignerError):
    """The request body could not be read or encoded for hashing."""


class MissingCredentialsError(SignerError):
    """Signing was attempted before any credentials were available.

    For role-based stores this means the metadata service has not yet
    answered successfully.
    """
