"""
Azure Container Registry client
"""

import logging
from typing import List, Optional, Tuple

from .base import MANIFEST_ACCEPT, DEFAULT_TIMEOUT, RegistryClient, TagDescriptor, jwt_ttl, parse_timestamp
from .errors import AuthenticationFailed, InvalidRegistryConfig

logger = logging.getLogger(__name__)

ACR_HOST_SUFFIX = '.azurecr.io'

# Lifetime assumed when an access token carries no readable expiry
DEFAULT_TOKEN_TTL = 300


def is_acr_host(host: str) -> bool:
    return host.endswith(ACR_HOST_SUFFIX)


class ACRClient(RegistryClient):
    """Client for Azure Container Registry (*.azurecr.io)"""

    kind = 'acr'

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        refresh_token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        scheme: str = 'https',
    ):
        """
        Initialize ACR client

        Args:
            username: Service principal or admin username
            password: Matching password
            refresh_token: ACR refresh token, preferred over username/password
            timeout: Request timeout in seconds
            scheme: URL scheme for registry hosts
        """
        super().__init__(timeout)
        if not refresh_token and not (username and password):
            raise InvalidRegistryConfig('acr requires refresh_token or username and password')

        self.scheme = scheme
        self._username = username
        self._password = password
        self._refresh_token = refresh_token

    def _access_token(self, host: str, repository: str) -> Tuple[str, Optional[float]]:
        """
        Exchange the configured credentials for a repository scoped access token

        Args:
            host: Registry host, e.g. "myregistry.azurecr.io"
            repository: Repository name

        Returns:
            (access_token, expires_in)
        """
        url = f"{self.scheme}://{host}/oauth2/token"
        scope = f"repository:{repository}:pull"

        if self._refresh_token:
            response = self._request('POST', url, host, repository, data={
                'grant_type': 'refresh_token',
                'service': host,
                'scope': scope,
                'refresh_token': self._refresh_token,
            })
        else:
            response = self._request(
                'GET',
                url,
                host,
                repository,
                params={'service': host, 'scope': scope},
                auth=(self._username, self._password),
            )

        self._raise_for_status(response, host, repository)
        token = self._json(response, host, repository).get('access_token')
        if not token:
            raise AuthenticationFailed(f"{host}: token exchange returned no access token", host, repository)

        ttl = jwt_ttl(token)
        logger.debug("Obtained ACR access token for %s/%s", host, repository)
        return token, ttl if ttl and ttl > 0 else DEFAULT_TOKEN_TTL

    def _get(self, host: str, repository: str, path: str, **kwargs):
        return self._authorized_get(
            f"{self.scheme}://{host}{path}",
            host,
            repository,
            (host, repository),
            lambda: self._access_token(host, repository),
            **kwargs,
        )

    def list_tags(self, host: str, repository: str) -> List[TagDescriptor]:
        """
        List all tags for a repository

        Uses the ACR tag API, which pages with a "last" marker and reports
        creation time and digest for each tag.
        """
        tags = []
        last = None

        while True:
            params = {'n': 100}
            if last:
                params['last'] = last

            response = self._get(host, repository, f"/acr/v1/{repository}/_tags", params=params)
            results = self._json(response, host, repository).get('tags') or []
            if not results:
                break

            for tag_data in results:
                tags.append(TagDescriptor(
                    name=tag_data.get('name'),
                    created=parse_timestamp(tag_data.get('createdTime')),
                    digest=tag_data.get('digest'),
                    metadata={'lastUpdateTime': tag_data.get('lastUpdateTime')},
                ))

            if 'next' not in response.links:
                break
            last = results[-1].get('name')

        return tags

    def get_manifest(self, host: str, repository: str, reference: str) -> TagDescriptor:
        response = self._get(
            host, repository, f"/v2/{repository}/manifests/{reference}", headers={'Accept': MANIFEST_ACCEPT}
        )
        return self._manifest_descriptor(response, reference, host, repository)
