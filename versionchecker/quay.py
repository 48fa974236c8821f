"""
Quay.io registry client
"""

from datetime import datetime, timezone
from typing import List, Optional

from .base import DEFAULT_TIMEOUT, RegistryClient, TagDescriptor
from .errors import RepositoryNotFound

QUAY_HOST = 'quay.io'


def is_quay_host(host: str) -> bool:
    return host == QUAY_HOST


def _from_ts(value) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


class QuayClient(RegistryClient):
    """Client for Quay.io, using its REST API rather than /v2"""

    kind = 'quay'

    def __init__(self, token: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT,
                 api_base: str = 'https://quay.io/api/v1'):
        """
        Initialize Quay client

        Args:
            token: OAuth application token; anonymous access when empty
            timeout: Request timeout in seconds
            api_base: Quay API base URL
        """
        super().__init__(timeout)
        self.api_base = api_base.rstrip('/')
        self._token = token or None

    def _get(self, repository: str, params: dict):
        return self._authorized_get(
            f"{self.api_base}/repository/{repository}/tag/",
            QUAY_HOST,
            repository,
            'quay',
            lambda: (self._token, None),
            params=params,
        )

    def list_tags(self, host: str, repository: str) -> List[TagDescriptor]:
        tags = []
        page = 1

        while True:
            response = self._get(repository, {'page': page, 'limit': 100, 'onlyActiveTags': 'true'})
            data = self._json(response, QUAY_HOST, repository)

            for tag_data in data.get('tags') or []:
                tags.append(self._parse_tag(tag_data))

            if not data.get('has_additional'):
                break
            page += 1

        return tags

    def get_manifest(self, host: str, repository: str, reference: str) -> TagDescriptor:
        response = self._get(repository, {'specificTag': reference, 'onlyActiveTags': 'true'})
        results = self._json(response, QUAY_HOST, repository).get('tags') or []
        if not results:
            raise RepositoryNotFound(f"{QUAY_HOST}/{repository}: tag {reference} not found", QUAY_HOST, repository)
        return self._parse_tag(results[0])

    def _parse_tag(self, tag_data: dict) -> TagDescriptor:
        return TagDescriptor(
            name=tag_data.get('name'),
            created=_from_ts(tag_data.get('start_ts')),
            digest=tag_data.get('manifest_digest'),
            size=tag_data.get('size'),
            metadata={'is_manifest_list': tag_data.get('is_manifest_list')},
        )
