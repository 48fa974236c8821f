"""
Version resolver - decides whether a running image is the latest available
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .base import RegistryClient, TagDescriptor, parse_version
from .errors import NoTagsFound, RegistryError, TagListFailed
from .image import ImageReference

logger = logging.getLogger(__name__)


@dataclass
class Result:
    """
    Version verdict for one container image

    Attributes:
        current_version: Tag (or digest) the container runs
        latest_version: Newest tag under semantic version ordering, empty if unknown
        is_latest: Whether the current version is that newest tag
        image_url: Host and repository, never with a tag or digest
    """
    current_version: str
    latest_version: str
    is_latest: bool
    image_url: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'CurrentVersion': self.current_version,
            'LatestVersion': self.latest_version,
            'IsLatest': self.is_latest,
            'ImageURL': self.image_url,
        }


def latest_tag(tags: List[TagDescriptor]) -> Optional[TagDescriptor]:
    """
    Pick the tag with the highest semantic version

    Tags that are not semantic versions are ignored. Among tags with equal
    versions (e.g. "v1.0.0" and "1.0.0") the first listed wins.

    Returns:
        TagDescriptor, or None when no tag parses
    """
    best = None
    best_version = None

    for tag in tags:
        version = tag.version
        if version is None:
            continue
        if best_version is None or version > best_version:
            best, best_version = tag, version

    return best


class VersionResolver:
    """Resolves the latest version of an image against its registry"""

    def __init__(self, client: RegistryClient):
        """
        Initialize resolver

        Args:
            client: Registry client responsible for the image's host
        """
        self.client = client

    def list_tags(self, image: ImageReference) -> List[TagDescriptor]:
        """
        List tags for the image's repository

        Raises:
            TagListFailed: the registry call failed (the cause is chained)
            NoTagsFound: the repository has no tags
        """
        try:
            tags = self.client.list_tags(image.host, image.repository)
        except RegistryError as e:
            raise TagListFailed(
                f"listing tags for {image.url} failed: {e.kind}: {e}", image.host, image.repository
            ) from e

        if not tags:
            raise NoTagsFound(f"no tags found for {image.url}", image.host, image.repository)
        return tags

    def resolve(self, image: ImageReference) -> Result:
        """
        Compare the image's tag (or digest) against the newest tag available

        Args:
            image: Parsed image reference

        Returns:
            Result. When no tag parses as a version, LatestVersion is empty and
            IsLatest false.
        """
        tags = self.list_tags(image)
        latest = latest_tag(tags)

        if image.uses_digest:
            return self._resolve_digest(image, latest)

        current = image.tag or ''
        if latest is None:
            logger.debug("No version-like tags for %s among %d tags", image.url, len(tags))
            return Result(current, '', False, image.url)

        current_version = parse_version(current)
        is_latest = current_version is not None and current_version == latest.version
        return Result(current, latest.name, is_latest, image.url)

    def _resolve_digest(self, image: ImageReference, latest: Optional[TagDescriptor]) -> Result:
        """Pinned by digest: the image is latest if the newest tag points at the same digest"""
        current = image.tag or image.digest
        if latest is None:
            return Result(current, '', False, image.url)

        digest = latest.digest
        if not digest:
            manifest = self.client.get_manifest(image.host, image.repository, latest.name)
            digest = manifest.digest

        return Result(current, latest.name, digest == image.digest, image.url)


def resolve_version(image: ImageReference, client: RegistryClient) -> Result:
    return VersionResolver(client).resolve(image)
