# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for signed header assembly and presigned URLs."""

import base64
import hashlib
import io
import threading
import urllib.parse
from datetime import timedelta
from unittest.mock import patch

import pytest

from s3signer.canonical import build_canonical_request
from s3signer.config import SignerConfig
from s3signer.credentials import (
    CredentialRefresher,
    Credentials,
    CredentialStore,
)
from s3signer.errors import (
    InvalidURLError,
    MissingCredentialsError,
    PayloadHashError,
)
from s3signer.payload import UNSIGNED_PAYLOAD, Payload
from s3signer.region import Region
from s3signer.signer import (
    MAX_EXPIRATION_SECONDS,
    Expiration,
    S3Signer,
    expiration_seconds,
)
from s3signer.signing import (
    build_string_to_sign,
    credential_scope,
    derive_signing_key,
    sign,
)
from tests.vectors import (
    ACCESS_KEY,
    EMPTY_SHA256,
    GET_OBJECT_CANONICAL_REQUEST,
    GET_OBJECT_SIGNATURE,
    GET_OBJECT_STRING_TO_SIGN,
    GET_OBJECT_URL,
    LIFECYCLE_SIGNATURE,
    LIFECYCLE_URL,
    LIST_OBJECTS_SIGNATURE,
    LIST_OBJECTS_URL,
    LONG_DATE,
    PRESIGNED_CANONICAL_QUERY,
    PRESIGNED_EXPIRES,
    PRESIGNED_SIGNATURE,
    SCOPE,
    SECRET_KEY,
    SIGNING_TIME,
)


def _auth_parts(authorization: str) -> dict[str, str]:
    """Split an Authorization header into its named components."""
    algorithm, _, rest = authorization.partition(" ")
    parts = {"algorithm": algorithm}
    for item in rest.split(", "):
        name, _, value = item.partition("=")
        parts[name] = value
    return parts


# ---------------------------------------------------------------------------
# Header signing
# ---------------------------------------------------------------------------


class TestHeaders:
    """Tests for S3Signer.headers and sign_request."""

    def test_get_object_vector(self, signer: S3Signer) -> None:
        """GET Object example produces the published signature."""
        result = signer.sign_request(
            "GET",
            GET_OBJECT_URL,
            headers={"Range": "bytes=0-9"},
            now=SIGNING_TIME,
        )
        assert result.canonical_request == GET_OBJECT_CANONICAL_REQUEST
        assert result.string_to_sign == GET_OBJECT_STRING_TO_SIGN
        assert result.signature == GET_OBJECT_SIGNATURE
        assert result.headers["Authorization"] == (
            "AWS4-HMAC-SHA256 "
            f"Credential={ACCESS_KEY}/{SCOPE}, "
            "SignedHeaders=host;range;x-amz-content-sha256;x-amz-date, "
            f"Signature={GET_OBJECT_SIGNATURE}"
        )

    def test_lifecycle_vector(self, signer: S3Signer) -> None:
        """GET Bucket lifecycle example produces the published signature."""
        headers = signer.headers("GET", LIFECYCLE_URL, now=SIGNING_TIME)
        auth = _auth_parts(headers["authorization"])
        assert auth["Signature"] == LIFECYCLE_SIGNATURE

    def test_list_objects_vector(self, signer: S3Signer) -> None:
        """GET Bucket (list objects) example produces the published one."""
        headers = signer.headers("GET", LIST_OBJECTS_URL, now=SIGNING_TIME)
        auth = _auth_parts(headers["authorization"])
        assert auth["Signature"] == LIST_OBJECTS_SIGNATURE

    def test_standard_headers_added(self, signer: S3Signer) -> None:
        """host, x-amz-date and x-amz-content-sha256 are always added."""
        headers = signer.headers("GET", GET_OBJECT_URL, now=SIGNING_TIME)
        assert headers["host"] == "examplebucket.s3.amazonaws.com"
        assert headers["x-amz-date"] == LONG_DATE
        assert headers["x-amz-content-sha256"] == EMPTY_SHA256
        assert "x-amz-security-token" not in headers
        assert "content-length" not in headers

    def test_session_token_signed(self) -> None:
        """A session token is sent and included in the signed headers."""
        store = CredentialStore.static(ACCESS_KEY, SECRET_KEY, "token-123")
        signer = S3Signer(store)
        headers = signer.headers("GET", GET_OBJECT_URL, now=SIGNING_TIME)
        assert headers["x-amz-security-token"] == "token-123"
        auth = _auth_parts(headers["authorization"])
        assert "x-amz-security-token" in auth["SignedHeaders"].split(";")

    def test_put_bytes_headers(self, signer: S3Signer) -> None:
        """PUT with bytes adds length, type and MD5."""
        body = b"Welcome to Amazon S3."
        headers = signer.headers(
            "PUT",
            "https://examplebucket.s3.amazonaws.com/docs/readme.html",
            payload=Payload.from_bytes(body),
            now=SIGNING_TIME,
        )
        assert headers["content-length"] == str(len(body))
        assert headers["content-type"] == "text/html"
        assert headers["content-md5"] == base64.b64encode(
            hashlib.md5(body).digest()
        ).decode()
        assert headers["x-amz-content-sha256"] == (
            hashlib.sha256(body).hexdigest()
        )
        signed = _auth_parts(headers["authorization"])["SignedHeaders"]
        assert signed.split(";") == sorted(
            [
                "content-length",
                "content-md5",
                "content-type",
                "host",
                "x-amz-content-sha256",
                "x-amz-date",
            ]
        )

    def test_put_unknown_extension_plain_text(self, signer: S3Signer) -> None:
        """Unknown extensions fall back to text/plain."""
        headers = signer.headers(
            "PUT",
            "https://b.s3.amazonaws.com/file.unknownext",
            payload=Payload.from_bytes(b"x"),
        )
        assert headers["content-type"] == "text/plain"

    def test_put_no_extension_no_content_type(self, signer: S3Signer) -> None:
        """Paths without an extension get no inferred content type."""
        headers = signer.headers(
            "PUT",
            "https://b.s3.amazonaws.com/folder/file",
            payload=Payload.from_bytes(b"x"),
        )
        assert "content-type" not in headers

    def test_put_caller_content_type_kept(self, signer: S3Signer) -> None:
        """A caller-supplied content type is not overridden."""
        headers = signer.headers(
            "PUT",
            "https://b.s3.amazonaws.com/image.png",
            headers={"Content-Type": "application/octet-stream"},
            payload=Payload.from_bytes(b"x"),
        )
        assert headers["content-type"] == "application/octet-stream"

    def test_put_acl_subresource(self, signer: S3Signer) -> None:
        """PUT ?acl with an empty body signs the subresource."""
        result = signer.sign_request(
            "PUT",
            "https://b.s3.amazonaws.com/key?acl",
            headers={"x-amz-acl": "public-read"},
            now=SIGNING_TIME,
        )
        assert result.headers["content-length"] == "0"
        assert "content-md5" not in result.headers
        assert result.canonical_request.split("\n")[2] == "acl="

    def test_put_unsigned_stream(self, signer: S3Signer) -> None:
        """Unsigned payloads use the sentinel and no MD5."""
        headers = signer.headers(
            "PUT",
            "https://b.s3.amazonaws.com/big.bin",
            payload=Payload.unsigned(size=1024),
        )
        assert headers["x-amz-content-sha256"] == UNSIGNED_PAYLOAD
        assert headers["content-length"] == "1024"
        assert "content-md5" not in headers

    def test_delete_content_length(self, signer: S3Signer) -> None:
        """DELETE carries a zero content length."""
        headers = signer.headers("DELETE", GET_OBJECT_URL)
        assert headers["content-length"] == "0"
        assert "content-type" not in headers

    def test_caller_headers_case_insensitive(self, signer: S3Signer) -> None:
        """Caller headers replace injected ones regardless of case."""
        headers = signer.headers(
            "GET",
            GET_OBJECT_URL,
            headers={"HOST": "ignored.example.com", "X-Custom": " a  b "},
            now=SIGNING_TIME,
        )
        assert headers["host"] == "examplebucket.s3.amazonaws.com"
        assert headers["X-Custom"] == " a  b "
        signed = _auth_parts(headers["authorization"])["SignedHeaders"]
        assert signed.split(";").count("host") == 1

    def test_stale_authorization_replaced(self, signer: S3Signer) -> None:
        """An incoming authorization header is not signed."""
        headers = signer.headers(
            "GET",
            GET_OBJECT_URL,
            headers={"Authorization": "old"},
            now=SIGNING_TIME,
        )
        signed = _auth_parts(headers["authorization"])["SignedHeaders"]
        assert "authorization" not in signed

    def test_region_override(self, signer: S3Signer) -> None:
        """The region argument changes the credential scope."""
        headers = signer.headers(
            "GET",
            "https://b.s3.eu-west-1.amazonaws.com/k",
            region=Region("eu-west-1"),
            now=SIGNING_TIME,
        )
        credential = _auth_parts(headers["authorization"])["Credential"]
        assert credential == f"{ACCESS_KEY}/20130524/eu-west-1/s3/aws4_request"

    def test_custom_port_in_host(self, signer: S3Signer) -> None:
        """Non-default ports are part of the signed host header."""
        headers = signer.headers("GET", "http://localhost:9000/bucket/key")
        assert headers["host"] == "localhost:9000"

    def test_invalid_url(self, signer: S3Signer) -> None:
        """Malformed URLs fail with InvalidURLError."""
        with pytest.raises(InvalidURLError):
            signer.headers("GET", "://missing-scheme")

    def test_payload_hash_error(self, signer: S3Signer) -> None:
        """Unreadable streams fail with PayloadHashError."""
        stream = io.BytesIO(b"data")
        stream.close()
        with pytest.raises(PayloadHashError):
            signer.headers(
                "PUT", GET_OBJECT_URL, payload=Payload.from_stream(stream)
            )

    def test_missing_credentials(self) -> None:
        """Signing without credentials fails with MissingCredentialsError."""
        signer = S3Signer(CredentialStore())
        with pytest.raises(MissingCredentialsError):
            signer.headers("GET", GET_OBJECT_URL)

    def test_fresh_timestamp_each_call(self, signer: S3Signer) -> None:
        """Each call signs with its own timestamp."""
        first = signer.headers("GET", GET_OBJECT_URL, now=SIGNING_TIME)
        second = signer.headers(
            "GET", GET_OBJECT_URL, now=SIGNING_TIME + timedelta(seconds=1)
        )
        assert first["x-amz-date"] != second["x-amz-date"]
        assert first["authorization"] != second["authorization"]


# ---------------------------------------------------------------------------
# Presigned URLs
# ---------------------------------------------------------------------------


class TestPresignedUrl:
    """Tests for S3Signer.presigned_url."""

    def test_published_vector(self, signer: S3Signer) -> None:
        """Presigned GET Object example produces the published URL."""
        url = signer.presigned_url(
            "GET", GET_OBJECT_URL, PRESIGNED_EXPIRES, now=SIGNING_TIME
        )
        assert url == (
            f"{GET_OBJECT_URL}?{PRESIGNED_CANONICAL_QUERY}"
            f"&X-Amz-Signature={PRESIGNED_SIGNATURE}"
        )

    def test_expires_param(self, signer: S3Signer) -> None:
        """The expiration appears as X-Amz-Expires."""
        url = signer.presigned_url("GET", GET_OBJECT_URL, 3600)
        assert "X-Amz-Expires=3600" in url

    def test_signature_verifiable(self, signer: S3Signer) -> None:
        """Recomputing the signature from the URL gives the same value."""
        url = signer.presigned_url(
            "GET",
            "https://b.s3.amazonaws.com/some%20key.txt?versionId=3",
            Expiration.HOUR,
            now=SIGNING_TIME,
        )
        unsigned_url, _, signature = url.rpartition("&X-Amz-Signature=")
        params = dict(
            urllib.parse.parse_qsl(urllib.parse.urlsplit(url).query)
        )
        assert params["X-Amz-Expires"] == "3600"
        assert params["versionId"] == "3"

        creq = build_canonical_request(
            "GET",
            unsigned_url,
            {"host": "b.s3.amazonaws.com"},
            UNSIGNED_PAYLOAD,
        )
        key = derive_signing_key(SECRET_KEY, "20130524", "us-east-1", "s3")
        expected = sign(
            key,
            build_string_to_sign(
                params["X-Amz-Date"],
                credential_scope("20130524", "us-east-1", "s3"),
                creq,
            ),
        )
        assert signature == expected

    def test_session_token_in_query(self) -> None:
        """Session tokens are added as X-Amz-Security-Token."""
        store = CredentialStore.static(ACCESS_KEY, SECRET_KEY, "tok/en+1")
        url = S3Signer(store).presigned_url("GET", GET_OBJECT_URL, 60)
        params = dict(
            urllib.parse.parse_qsl(urllib.parse.urlsplit(url).query)
        )
        assert params["X-Amz-Security-Token"] == "tok/en+1"
        assert "X-Amz-Security-Token=tok%2Fen%2B1" in url

    def test_extra_headers_signed(self, signer: S3Signer) -> None:
        """Extra headers are listed in X-Amz-SignedHeaders."""
        url = signer.presigned_url(
            "PUT",
            GET_OBJECT_URL,
            60,
            headers={"Content-Type": "text/plain"},
        )
        assert "X-Amz-SignedHeaders=content-type%3Bhost" in url

    def test_host_from_url(self) -> None:
        """The host header follows the URL, not the region default."""
        store = CredentialStore.static(ACCESS_KEY, SECRET_KEY)
        signer = S3Signer(store, Region("eu-west-1"))
        result = signer.presigned_url(
            "GET", "https://minio.internal:9000/bucket/key", 60
        )
        assert result.startswith("https://minio.internal:9000/bucket/key?")
        assert "%2Feu-west-1%2Fs3%2F" in result

    def test_timedelta_expiration(self, signer: S3Signer) -> None:
        """Timedeltas are converted to seconds."""
        url = signer.presigned_url(
            "GET", GET_OBJECT_URL, timedelta(minutes=5)
        )
        assert "X-Amz-Expires=300" in url

    def test_invalid_url(self, signer: S3Signer) -> None:
        """Malformed URLs fail with InvalidURLError."""
        with pytest.raises(InvalidURLError):
            signer.presigned_url("GET", "bucket/key", 60)

    @pytest.mark.parametrize("expires", [0, -1, MAX_EXPIRATION_SECONDS + 1])
    def test_expiration_out_of_range(
        self, signer: S3Signer, expires: int
    ) -> None:
        """Expirations outside 1s..7d are rejected."""
        with pytest.raises(ValueError):
            signer.presigned_url("GET", GET_OBJECT_URL, expires)


class TestExpirationSeconds:
    """Tests for expiration_seconds."""

    def test_enum(self) -> None:
        """Presets convert to their seconds value."""
        assert expiration_seconds(Expiration.WEEK) == 604800
        assert expiration_seconds(Expiration.THIRTY_MINUTES) == 1800

    def test_bool_rejected(self) -> None:
        """Booleans are not accepted as a number of seconds."""
        with pytest.raises(ValueError):
            expiration_seconds(True)


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrentRefresh:
    """Signing while credentials are swapped."""

    def test_no_mixed_credentials(self) -> None:
        """Every signature matches one complete credential snapshot."""
        old = Credentials("AKIAOLD", "old-secret", "old-token")
        new = Credentials("AKIANEW", "new-secret", "new-token")
        store = CredentialStore(old)
        signer = S3Signer(store)
        results: list[tuple[str, str]] = []
        results_lock = threading.Lock()
        start = threading.Barrier(9)

        def worker() -> None:
            start.wait()
            for _ in range(50):
                result = signer.sign_request(
                    "GET", GET_OBJECT_URL, now=SIGNING_TIME
                )
                with results_lock:
                    results.append(
                        (
                            result.headers["authorization"],
                            result.headers["x-amz-security-token"],
                        )
                    )

        def swapper() -> None:
            start.wait()
            for i in range(50):
                store.update(new if i % 2 == 0 else old)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        threads.append(threading.Thread(target=swapper))
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        expected = {}
        for creds in (old, new):
            result = S3Signer(CredentialStore(creds)).sign_request(
                "GET", GET_OBJECT_URL, now=SIGNING_TIME
            )
            expected[creds.session_token] = result.headers["authorization"]

        assert len(results) == 400
        for authorization, token in results:
            assert expected[token] == authorization


class TestFromConfig:
    """Tests for S3Signer.from_config."""

    def test_static_keys(self) -> None:
        """Static keys give a store without a refresher."""
        config = SignerConfig(
            Region("eu-west-1"), access_key="AK", secret_key="SK"
        )
        signer = S3Signer.from_config(config)
        assert signer.region == Region("eu-west-1")
        assert signer.credentials.refresher is None
        assert signer.credentials.current().access_key == "AK"
        signer.close()

    def test_role_starts_refresher(self) -> None:
        """Role configs start a refresher that close() stops."""
        config = SignerConfig(
            Region(),
            role_name="role",
            refresh_interval=3600,
            metadata_url="http://127.0.0.1:9/creds",
        )
        with patch.object(CredentialRefresher, "refresh", return_value=False):
            signer = S3Signer.from_config(config)
            refresher = signer.credentials.refresher
            assert refresher is not None
            assert refresher.url == "http://127.0.0.1:9/creds/role"
            signer.close()
        assert not refresher.running


class TestPathStyleUrls:
    """Tests for /bucket/key paths resolved against the region endpoint."""

    def test_presigned_plain_http(self, static_store: CredentialStore) -> None:
        """use_tls=False gives an http presigned URL."""
        signer = S3Signer(
            static_store, Region(host="localhost:9000", use_tls=False)
        )
        url = signer.presigned_url("GET", "/bucket/k", 60, now=SIGNING_TIME)
        assert url.startswith(
            "http://localhost:9000/bucket/k?X-Amz-Algorithm=AWS4-HMAC-SHA256&"
        )

    def test_use_tls_from_config(self) -> None:
        """The configured scheme decides the presigned URL scheme."""
        urls = []
        for use_tls in (True, False):
            config = SignerConfig.from_dict(
                {
                    "region": "eu-west-1",
                    "use_tls": use_tls,
                    "credentials": {
                        "access_key": ACCESS_KEY,
                        "secret_key": SECRET_KEY,
                    },
                }
            )
            signer = S3Signer.from_config(config)
            urls.append(
                signer.presigned_url("GET", "/b/k", 60, now=SIGNING_TIME)
            )
        assert urls[0].startswith("https://s3.eu-west-1.amazonaws.com/b/k?")
        assert urls[1].startswith("http://s3.eu-west-1.amazonaws.com/b/k?")

    def test_same_signature_as_absolute_url(self, signer: S3Signer) -> None:
        """A path signs exactly like the equivalent absolute URL."""
        by_path = signer.headers("GET", "/bucket/key", now=SIGNING_TIME)
        by_url = signer.headers(
            "GET", "https://s3.amazonaws.com/bucket/key", now=SIGNING_TIME
        )
        assert by_path == by_url
        assert by_path["host"] == "s3.amazonaws.com"

    def test_region_override_endpoint(self, signer: S3Signer) -> None:
        """An explicit region supplies the endpoint for the path."""
        headers = signer.headers(
            "GET", "/bucket/key", region=Region("ap-southeast-2")
        )
        assert headers["host"] == "s3.ap-southeast-2.amazonaws.com"
