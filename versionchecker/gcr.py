"""
Google Container Registry client

Also serves Artifact Registry hosts (<region>-docker.pkg.dev), which speak the
same API.
"""

from datetime import datetime, timezone
from typing import List, Optional

from .base import MANIFEST_ACCEPT, DEFAULT_TIMEOUT, RegistryClient, TagDescriptor
from .errors import RegistryError

# Username convention for access tokens presented as basic auth
TOKEN_USERNAME = 'oauth2accesstoken'


def is_gcr_host(host: str) -> bool:
    return host == 'gcr.io' or host.endswith('.gcr.io') or host.endswith('-docker.pkg.dev')


class GCRClient(RegistryClient):
    """Client for gcr.io and Artifact Registry"""

    kind = 'gcr'

    def __init__(self, token: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT, scheme: str = 'https'):
        """
        Initialize GCR client

        Args:
            token: OAuth2 access token; anonymous access when empty
            timeout: Request timeout in seconds
            scheme: URL scheme for registry hosts
        """
        super().__init__(timeout)
        self.scheme = scheme
        self._basic = (TOKEN_USERNAME, token) if token else None

    def list_tags(self, host: str, repository: str) -> List[TagDescriptor]:
        """
        List all tags for a repository

        The GCR tag list carries a "manifest" map keyed by digest, which
        supplies creation times and digests for each tag.
        """
        by_tag = {}
        tag_names = []
        for page in self._v2_tag_pages(f"{self.scheme}://{host}", host, repository, basic=self._basic):
            tag_names.extend(self._v2_tag_names(page, host, repository))

            manifests = page.get('manifest') or {}
            if not isinstance(manifests, dict):
                raise RegistryError(f"{host}/{repository}: malformed manifest map", host, repository)
            for digest, manifest in manifests.items():
                created = None
                created_ms = manifest.get('timeCreatedMs') or manifest.get('timeUploadedMs')
                if created_ms:
                    try:
                        created = datetime.fromtimestamp(int(created_ms) / 1000, tz=timezone.utc)
                    except (ValueError, OverflowError, OSError):
                        created = None
                for tag in manifest.get('tag') or []:
                    by_tag[tag] = (digest, created, manifest)

        tags = []
        for name in tag_names:
            digest, created, manifest = by_tag.get(name, (None, None, {}))
            size = manifest.get('imageSizeBytes')
            tags.append(TagDescriptor(
                name=name,
                created=created,
                digest=digest,
                size=int(size) if size else None,
                metadata={'mediaType': manifest.get('mediaType')} if manifest else None,
            ))
        return tags

    def get_manifest(self, host: str, repository: str, reference: str) -> TagDescriptor:
        response = self._v2_get(
            f"{self.scheme}://{host}",
            host,
            repository,
            f"/v2/{repository}/manifests/{reference}",
            basic=self._basic,
            headers={'Accept': MANIFEST_ACCEPT},
        )
        return self._manifest_descriptor(response, reference, host, repository)
