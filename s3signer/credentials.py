# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Credential storage and IAM role credential refresh.

``CredentialStore`` owns the only mutable secret state in the package: a
reference to an immutable ``Credentials`` snapshot.  Writers replace the
reference wholesale under a lock and readers take one snapshot per
signing call, so a signature is always computed from a matching access
key, secret key and session token.

``CredentialRefresher`` keeps a store populated from the EC2 instance
metadata service.  It refreshes immediately on start and then every
``interval`` seconds after each attempt, whether the attempt succeeded
or not.  Failures are logged and otherwise absorbed: the last good
credentials stay in effect.  During a prolonged metadata outage those
credentials eventually expire and requests start failing with
authentication errors from the storage service; the refresher logs an
error once ``failure_alert_threshold`` consecutive attempts have failed
so that this state is visible in the logs.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import httpx

from s3signer.errors import MissingCredentialsError
from s3signer.logging import SecretFilter


logger = logging.getLogger(__name__)

METADATA_URL = (
    "http://169.254.169.254/latest/meta-data/iam/security-credentials"
)

#: Seconds between refresh attempts.
REFRESH_INTERVAL_SECONDS = 30 * 60

#: Metadata requests must not hold up signing when the service is down.
METADATA_TIMEOUT = httpx.Timeout(3.0, connect=1.0)

#: Consecutive failed refreshes before an error is logged.
FAILURE_ALERT_THRESHOLD = 3


@dataclass(frozen=True)
class Credentials:
    """An immutable access key / secret key / session token triple.

    Attributes:
        access_key: AWS access key ID.
        secret_key: AWS secret access key.
        session_token: Session token for temporary credentials.
        expiration: When temporary credentials stop being valid.
    """

    access_key: str
    secret_key: str = field(repr=False)
    session_token: str | None = field(default=None, repr=False)
    expiration: datetime | None = None

    def __post_init__(self) -> None:
        if not self.access_key or not self.secret_key:
            raise ValueError(
                "Credentials need both an access key and a secret key"
            )

    @property
    def expired(self) -> bool:
        """True if ``expiration`` is known and in the past."""
        if self.expiration is None:
            return False
        return datetime.now(UTC) >= self.expiration


def parse_role_credentials(data: Any) -> Credentials:
    """Build ``Credentials`` from an instance metadata JSON document.

    Args:
        data: Decoded JSON body with ``AccessKeyId``, ``SecretAccessKey``
            and ``Token`` (``Code`` and ``Expiration`` are optional).

    Returns:
        Parsed credentials.

    Raises:
        ValueError: If the document is not an object, reports a non-success
            code, or lacks one of the required fields.
    """
    if not isinstance(data, dict):
        raise ValueError("Metadata credentials document is not an object")

    code = data.get("Code", "Success")
    if code != "Success":
        raise ValueError(f"Metadata service returned code {code!r}")

    values: dict[str, str] = {}
    for name in ("AccessKeyId", "SecretAccessKey", "Token"):
        value = data.get(name)
        if not isinstance(value, str) or not value:
            raise ValueError(f"Metadata credentials missing {name}")
        values[name] = value

    expiration = None
    raw_expiration = data.get("Expiration")
    if isinstance(raw_expiration, str) and raw_expiration:
        expiration = datetime.fromisoformat(raw_expiration)
        if expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=UTC)

    return Credentials(
        access_key=values["AccessKeyId"],
        secret_key=values["SecretAccessKey"],
        session_token=values["Token"],
        expiration=expiration,
    )


class CredentialStore:
    """Thread-safe holder of the current ``Credentials`` snapshot."""

    def __init__(self, credentials: Credentials | None = None) -> None:
        self._lock = threading.Lock()
        self._credentials: Credentials | None = None
        self.refresher: CredentialRefresher | None = None
        if credentials is not None:
            self.update(credentials)

    @classmethod
    def static(
        cls,
        access_key: str,
        secret_key: str,
        session_token: str | None = None,
    ) -> CredentialStore:
        """Create a store with fixed, caller-supplied credentials."""
        return cls(Credentials(access_key, secret_key, session_token))

    @classmethod
    def from_role(
        cls,
        role_name: str,
        *,
        start: bool = True,
        **refresher_kwargs: Any,
    ) -> CredentialStore:
        """Create an empty store kept up to date from an IAM role.

        Args:
            role_name: IAM role attached to the instance.
            start: Start the background refresh immediately.
            **refresher_kwargs: Passed to ``CredentialRefresher``.

        Returns:
            The store; its refresher is available as ``store.refresher``.
        """
        store = cls()
        store.refresher = CredentialRefresher(
            store, role_name, **refresher_kwargs
        )
        if start:
            store.refresher.start()
        return store

    def current(self) -> Credentials:
        """Return the current credentials snapshot.

        Raises:
            MissingCredentialsError: If no credentials were ever stored.
        """
        with self._lock:
            credentials = self._credentials
        if credentials is None:
            raise MissingCredentialsError(
                "No credentials available yet; "
                "the instance metadata service has not answered"
            )
        return credentials

    def update(self, credentials: Credentials) -> None:
        """Replace the stored credentials with a new snapshot."""
        SecretFilter.register_secret(credentials.secret_key)
        SecretFilter.register_secret(credentials.session_token)
        with self._lock:
            self._credentials = credentials

    @property
    def has_credentials(self) -> bool:
        """True once credentials have been stored."""
        with self._lock:
            return self._credentials is not None

    def close(self) -> None:
        """Stop the background refresher, if any."""
        if self.refresher is not None:
            self.refresher.stop()


class CredentialRefresher:
    """Periodically fetches IAM role credentials into a store.

    Args:
        store: Store to update.
        role_name: IAM role name appended to the metadata URL.
        interval: Seconds between attempts.
        metadata_url: Base security-credentials URL.
        timeout: httpx timeout for each metadata request.
        failure_alert_threshold: Consecutive failures before an error
            is logged.
    """

    def __init__(
        self,
        store: CredentialStore,
        role_name: str,
        *,
        interval: float = REFRESH_INTERVAL_SECONDS,
        metadata_url: str = METADATA_URL,
        timeout: httpx.Timeout = METADATA_TIMEOUT,
        failure_alert_threshold: int = FAILURE_ALERT_THRESHOLD,
    ) -> None:
        if not role_name:
            raise ValueError("role_name must not be empty")
        self._store = store
        self._role_name = role_name
        self._interval = interval
        self._metadata_url = metadata_url.rstrip("/")
        self._timeout = timeout
        self._failure_alert_threshold = failure_alert_threshold
        self._consecutive_failures = 0
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def url(self) -> str:
        """Metadata URL for the configured role."""
        return f"{self._metadata_url}/{self._role_name}"

    @property
    def consecutive_failures(self) -> int:
        """Number of failed attempts since the last success."""
        return self._consecutive_failures

    @property
    def running(self) -> bool:
        """True while the background thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background refresh thread.

        The first refresh runs immediately.  Calling ``start`` on a
        running refresher is a no-op.
        """
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name=f"s3signer-refresh-{self._role_name}",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Stop the background thread and wait for it to exit.

        Args:
            timeout: Seconds to wait for the thread (None waits until an
                in-flight metadata request completes).
        """
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.refresh()
            except Exception:
                logger.exception(
                    "Unexpected error refreshing credentials for role %s",
                    self._role_name,
                )
            if self._stop_event.wait(self._interval):
                break
        logger.debug(
            "Credential refresher for role %s stopped", self._role_name
        )

    def refresh(self) -> bool:
        """Fetch credentials once and store them on success.

        Returns:
            True if the store was updated, False if the attempt failed.
        """
        try:
            credentials = self._fetch()
        except httpx.HTTPError as e:
            self._record_failure(f"request failed: {e}")
            return False
        except ValueError as e:
            self._record_failure(f"invalid response: {e}")
            return False

        self._store.update(credentials)
        if self._consecutive_failures:
            logger.info(
                "Credential refresh for role %s recovered after %d failures",
                self._role_name,
                self._consecutive_failures,
            )
        self._consecutive_failures = 0
        logger.info(
            "Refreshed credentials for role %s (access key %s, expires %s)",
            self._role_name,
            credentials.access_key,
            credentials.expiration.isoformat()
            if credentials.expiration
            else "unknown",
        )
        return True

    def _fetch(self) -> Credentials:
        """Request and parse the role credentials document.

        Raises:
            httpx.HTTPError: On transport errors and non-2xx responses.
            ValueError: On malformed JSON or missing fields.
        """
        with httpx.Client(timeout=self._timeout) as client:
            response = client.get(self.url)
            response.raise_for_status()
        return parse_role_credentials(response.json())

    def _record_failure(self, reason: str) -> None:
        self._consecutive_failures += 1
        logger.warning(
            "Credential refresh for role %s failed (%d in a row): %s",
            self._role_name,
            self._consecutive_failures,
            reason,
        )
        if self._consecutive_failures == self._failure_alert_threshold:
            logger.error(
                "Credential refresh for role %s has failed %d times in a "
                "row; signing continues with stale credentials, if any",
                self._role_name,
                self._consecutive_failures,
            )

        if self._store.has_credentials:
            current = self._store.current()
            if current.expired:
                assert current.expiration is not None
                logger.warning(
                    "Stored credentials for role %s expired at %s; signed "
                    "requests will be rejected until a refresh succeeds",
                    self._role_name,
                    current.expiration.isoformat(),
                )
