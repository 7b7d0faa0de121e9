# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""S3 region and endpoint resolution."""

from __future__ import annotations

from dataclasses import dataclass, replace


#: Service name used in every credential scope.
SERVICE_S3 = "s3"

DEFAULT_REGION = "us-east-1"

#: Region identifiers served by an amazonaws.com endpoint.  Unknown names
#: are still accepted (S3-compatible stores pick their own); configuration
#: only warns about them.
KNOWN_REGIONS = frozenset(
    {
        "us-east-1",
        "us-east-2",
        "us-west-1",
        "us-west-2",
        "ca-central-1",
        "eu-central-1",
        "eu-west-1",
        "eu-west-2",
        "eu-west-3",
        "eu-north-1",
        "ap-east-1",
        "ap-south-1",
        "ap-southeast-1",
        "ap-southeast-2",
        "ap-northeast-1",
        "ap-northeast-2",
        "ap-northeast-3",
        "sa-east-1",
        "me-south-1",
        "cn-north-1",
        "cn-northwest-1",
        "us-gov-east-1",
        "us-gov-west-1",
    }
)


def default_host(name: str) -> str:
    """Return the AWS S3 endpoint host for a region identifier.

    ``us-east-1`` keeps the legacy global endpoint; China regions live
    under ``amazonaws.com.cn``.

    Args:
        name: Region identifier (e.g. ``eu-west-1``).

    Returns:
        Host name without scheme.
    """
    if name == DEFAULT_REGION:
        return "s3.amazonaws.com"
    if name.startswith("cn-"):
        return f"s3.{name}.amazonaws.com.cn"
    return f"s3.{name}.amazonaws.com"


@dataclass(frozen=True)
class Region:
    """A signing region and the host serving it.

    Attributes:
        name: Region identifier used in the credential scope.
        host: Endpoint host (without scheme).  Defaults to the AWS host
            for ``name``; set it explicitly for S3-compatible stores.
        service: Service name in the credential scope.
        use_tls: Whether ``endpoint`` (and so resolved paths) use https.
    """

    name: str = DEFAULT_REGION
    host: str = ""
    service: str = SERVICE_S3
    use_tls: bool = True

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Region name must not be empty")
        if not self.host:
            object.__setattr__(self, "host", default_host(self.name))

    @property
    def endpoint(self) -> str:
        """Base URL of the region endpoint."""
        scheme = "https" if self.use_tls else "http"
        return f"{scheme}://{self.host}"

    @property
    def is_known(self) -> bool:
        """True if ``name`` is a known AWS region identifier."""
        return self.name in KNOWN_REGIONS

    def resolve(self, url: str) -> str:
        """Resolve a path-style ``/bucket/key`` against ``endpoint``.

        Absolute URLs are returned unchanged.
        """
        if url.startswith("/"):
            return f"{self.endpoint}{url}"
        return url

    def with_name(self, name: str) -> Region:
        """Return this region renamed, keeping a custom host and scheme.

        A host that was derived from the old name is derived again from
        the new one.
        """
        host = "" if self.host == default_host(self.name) else self.host
        return replace(self, name=name, host=host)
