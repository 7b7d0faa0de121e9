# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Request body digests for SigV4 signing.

A ``Payload`` wraps whatever body the caller is about to send and knows
how to produce the ``x-amz-content-sha256`` value for it:

- bytes / text: SHA-256 hex of the exact bytes
- empty: SHA-256 hex of ``b""``
- unsigned: the ``UNSIGNED-PAYLOAD`` sentinel (body not hashed)
- stream: seekable streams are hashed and rewound; non-seekable streams
  fall back to ``UNSIGNED-PAYLOAD``
"""

from __future__ import annotations

import base64
import hashlib
import io
from typing import IO

from s3signer.errors import PayloadHashError


UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"

EMPTY_SHA256 = hashlib.sha256(b"").hexdigest()

_READ_CHUNK = 64 * 1024

_KIND_BYTES = "bytes"
_KIND_EMPTY = "empty"
_KIND_UNSIGNED = "unsigned"
_KIND_STREAM = "stream"


class Payload:
    """Request body as seen by the signer."""

    __slots__ = ("_kind", "_data", "_stream", "_size")

    def __init__(
        self,
        kind: str,
        *,
        data: bytes = b"",
        stream: IO[bytes] | None = None,
        size: int | None = None,
    ) -> None:
        self._kind = kind
        self._data = data
        self._stream = stream
        self._size = size

    @classmethod
    def from_bytes(cls, data: bytes | bytearray | memoryview) -> Payload:
        """Payload of in-memory bytes."""
        return cls(_KIND_BYTES, data=bytes(data))

    @classmethod
    def from_text(cls, value: str, encoding: str = "utf-8") -> Payload:
        """Payload of a string, encoded before hashing.

        Raises:
            PayloadHashError: If the string cannot be encoded.
        """
        try:
            data = value.encode(encoding)
        except (UnicodeEncodeError, LookupError) as e:
            raise PayloadHashError(f"Cannot encode payload text: {e}") from e
        return cls(_KIND_BYTES, data=data)

    @classmethod
    def empty(cls) -> Payload:
        """No body."""
        return cls(_KIND_EMPTY)

    @classmethod
    def unsigned(cls, size: int | None = None) -> Payload:
        """Body sent without a content hash (e.g. a large upload).

        Args:
            size: Body length in bytes, if known.
        """
        return cls(_KIND_UNSIGNED, size=size)

    @classmethod
    def from_stream(cls, fileobj: IO[bytes]) -> Payload:
        """Body read from a binary file object."""
        return cls(_KIND_STREAM, stream=fileobj)

    @property
    def is_bytes(self) -> bool:
        """True when the body is a concrete in-memory byte string."""
        return self._kind == _KIND_BYTES

    def hashed(self) -> str:
        """Return the payload hash for ``x-amz-content-sha256``.

        Raises:
            PayloadHashError: If a stream cannot be read.
        """
        if self._kind == _KIND_BYTES:
            return hashlib.sha256(self._data).hexdigest()
        if self._kind == _KIND_EMPTY:
            return EMPTY_SHA256
        if self._kind == _KIND_STREAM:
            return self._hash_stream()
        return UNSIGNED_PAYLOAD

    def size(self) -> int | None:
        """Body length in bytes, or None when it cannot be determined."""
        if self._kind == _KIND_BYTES:
            return len(self._data)
        if self._kind == _KIND_EMPTY:
            return 0
        if self._kind == _KIND_STREAM:
            return self._stream_size()
        return self._size

    def content_md5(self) -> str:
        """Base64 MD5 digest of the bytes body, for ``content-md5``."""
        return base64.b64encode(hashlib.md5(self._data).digest()).decode(
            "ascii"
        )

    def _seekable(self) -> bool:
        """Whether the stream can be rewound.

        Raises:
            PayloadHashError: If the stream is closed.
        """
        assert self._stream is not None
        try:
            return self._stream.seekable()
        except AttributeError:
            return False
        except ValueError as e:
            raise PayloadHashError(f"Cannot read payload stream: {e}") from e

    def _hash_stream(self) -> str:
        assert self._stream is not None
        if not self._seekable():
            return UNSIGNED_PAYLOAD

        digest = hashlib.sha256()
        try:
            start = self._stream.tell()
            while True:
                chunk = self._stream.read(_READ_CHUNK)
                if not chunk:
                    break
                if not isinstance(chunk, (bytes, bytearray)):
                    raise PayloadHashError(
                        "Payload stream must be opened in binary mode"
                    )
                digest.update(chunk)
            self._stream.seek(start)
        except (OSError, ValueError) as e:
            raise PayloadHashError(f"Cannot read payload stream: {e}") from e
        return digest.hexdigest()

    def _stream_size(self) -> int | None:
        assert self._stream is not None
        if not self._seekable():
            return None
        try:
            start = self._stream.tell()
            end = self._stream.seek(0, io.SEEK_END)
            self._stream.seek(start)
        except (OSError, ValueError):
            return None
        return end - start

    def __repr__(self) -> str:
        return f"Payload({self._kind!r}, size={self.size()!r})"
