"""
Docker Hub registry client
"""

import logging
import time
from typing import List, Optional, Tuple

from .base import DEFAULT_TIMEOUT, RegistryClient, TagDescriptor, jwt_ttl, parse_timestamp
from .errors import AuthenticationFailed, InvalidRegistryConfig

logger = logging.getLogger(__name__)

DOCKER_HUB_HOSTS = frozenset([
    'docker.io',
    'index.docker.io',
    'registry-1.docker.io',
    'registry.hub.docker.com',
])

# Hub login tokens are valid for a while; assume a conservative lifetime
DEFAULT_TOKEN_TTL = 300


def is_docker_hub_host(host: str) -> bool:
    return host in DOCKER_HUB_HOSTS


class DockerHubClient(RegistryClient):
    """Client for Docker Hub registry"""

    kind = 'docker'

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        rate_limit_delay: float = 0.0,
        api_base: str = 'https://hub.docker.com/v2',
    ):
        """
        Initialize Docker Hub client

        Any combination of credentials may be given: a token is used directly
        and preferred, username/password are exchanged for a token, and with
        neither the client is anonymous.

        Args:
            username: Docker Hub username
            password: Docker Hub password or access token
            token: Pre-issued Hub API token
            timeout: Request timeout in seconds
            rate_limit_delay: Delay between tag pages (default: 0.0)
            api_base: Hub API base URL
        """
        super().__init__(timeout)
        if bool(username) != bool(password) and not token:
            raise InvalidRegistryConfig('docker requires both username and password, or a token')

        self.api_base = api_base.rstrip('/')
        self.rate_limit_delay = rate_limit_delay
        self._username = username
        self._password = password
        self._token = token

    @property
    def anonymous(self) -> bool:
        return not (self._token or self._username)

    def _get_namespace(self, repository: str) -> Tuple[str, str]:
        """
        Split repository into (namespace, repository)

        Official images use the 'library' namespace.
        """
        if '/' in repository:
            namespace, _, repo = repository.partition('/')
            return namespace, repo
        return 'library', repository

    def _login(self) -> Tuple[Optional[str], Optional[float]]:
        if self._token:
            return self._token, None
        if self.anonymous:
            return None, None

        host = 'hub.docker.com'
        response = self._request(
            'POST',
            f"{self.api_base}/users/login",
            host,
            json={'username': self._username, 'password': self._password},
        )
        self._raise_for_status(response, host)
        token = self._json(response, host).get('token')
        if not token:
            raise AuthenticationFailed(f"{host}: login returned no token", host)

        ttl = jwt_ttl(token)
        return token, ttl if ttl and ttl > 0 else DEFAULT_TOKEN_TTL

    def _get(self, url: str, repository: str, **kwargs):
        return self._authorized_get(url, 'hub.docker.com', repository, 'hub', self._login, **kwargs)

    def list_tags(self, host: str, repository: str) -> List[TagDescriptor]:
        """
        List all tags for a Docker Hub repository

        Args:
            host: Image host (one of the Docker Hub aliases)
            repository: Repository name (e.g., "nginx", "jetstack/cert-manager")

        Returns:
            List of TagDescriptor objects
        """
        ns, repo = self._get_namespace(repository)

        tags = []
        url = f"{self.api_base}/repositories/{ns}/{repo}/tags"
        params = {'page_size': 100}

        while url:
            response = self._get(url, repository, params=params)
            data = self._json(response, 'hub.docker.com', repository)

            for tag_data in data.get('results') or []:
                tags.append(self._parse_tag(tag_data))

            # "next" is a complete URL including the page parameters
            url = data.get('next')
            params = None

            if url and self.rate_limit_delay:
                time.sleep(self.rate_limit_delay)

        return tags

    def get_manifest(self, host: str, repository: str, reference: str) -> TagDescriptor:
        """Get metadata for a single tag from the Hub API"""
        ns, repo = self._get_namespace(repository)
        response = self._get(f"{self.api_base}/repositories/{ns}/{repo}/tags/{reference}", repository)
        return self._parse_tag(self._json(response, 'hub.docker.com', repository))

    def _parse_tag(self, tag_data: dict) -> TagDescriptor:
        """
        Parse tag data from Docker Hub API response

        Args:
            tag_data: Tag data from API

        Returns:
            TagDescriptor object
        """
        images = tag_data.get('images') or []

        # Prefer the manifest list digest, which is what a pod pulls by
        digest = tag_data.get('digest')
        if not digest and images:
            digest = images[0].get('digest')

        size = None
        if images:
            total_size = sum(img.get('size') or 0 for img in images)
            if total_size > 0:
                size = total_size

        return TagDescriptor(
            name=tag_data.get('name', 'unknown'),
            created=parse_timestamp(tag_data.get('tag_last_pushed') or tag_data.get('last_updated')),
            digest=digest,
            size=size,
            metadata={
                'full_size': tag_data.get('full_size'),
                'images': len(images),
            },
        )
