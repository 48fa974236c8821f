"""
Self-hosted registry client

Any registry implementing the standard registry HTTP API, addressed by host.
"""

from typing import List, Optional, Tuple
from urllib.parse import urlparse

from .base import MANIFEST_ACCEPT, DEFAULT_TIMEOUT, RegistryClient, TagDescriptor
from .errors import InvalidRegistryConfig


def split_host(value: str) -> Tuple[str, str]:
    """
    Split a configured host into (scheme, host[:port])

    "http://registry:5000" -> ("http", "registry:5000")
    "registry.example.com" -> ("https", "registry.example.com")
    """
    value = value.strip().rstrip('/')
    if '://' not in value:
        return 'https', value

    parsed = urlparse(value)
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise InvalidRegistryConfig(f"invalid self-hosted registry host: {value}")
    return parsed.scheme, parsed.netloc


class SelfHostedClient(RegistryClient):
    """Client for registries speaking the plain /v2 API"""

    kind = 'selfhosted'

    def __init__(
        self,
        host: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        bearer: Optional[str] = None,
        name: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize self-hosted client

        Args:
            host: Registry host, optionally with scheme (http:// for insecure registries)
            username: Basic auth username
            password: Basic auth password
            bearer: Static bearer token, used instead of basic auth
            name: Configuration name, e.g. "selfhosted-6"
            timeout: Request timeout in seconds
        """
        super().__init__(timeout)
        if not host:
            raise InvalidRegistryConfig('self-hosted registry requires a host')
        if bearer and (username or password):
            raise InvalidRegistryConfig(f"self-hosted registry {host}: use either username/password or bearer")
        if bool(username) != bool(password):
            raise InvalidRegistryConfig(f"self-hosted registry {host}: username and password go together")

        self.scheme, self.host = split_host(host)
        self.base_url = f"{self.scheme}://{self.host}"
        self.name = name or self.host
        self._basic = (username, password) if username else None
        self._bearer = bearer or None

    def __repr__(self) -> str:
        return f"SelfHostedClient(name='{self.name}', host='{self.host}')"

    def list_tags(self, host: str, repository: str) -> List[TagDescriptor]:
        tags = []
        for page in self._v2_tag_pages(self.base_url, self.host, repository, basic=self._basic, bearer=self._bearer):
            tags.extend(TagDescriptor(name=name) for name in self._v2_tag_names(page, self.host, repository))
        return tags

    def get_manifest(self, host: str, repository: str, reference: str) -> TagDescriptor:
        response = self._v2_get(
            self.base_url,
            self.host,
            repository,
            f"/v2/{repository}/manifests/{reference}",
            basic=self._basic,
            bearer=self._bearer,
            headers={'Accept': MANIFEST_ACCEPT},
        )
        return self._manifest_descriptor(response, reference, self.host, repository)
