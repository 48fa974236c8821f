"""
Container image reference parsing
"""

import re
from dataclasses import dataclass
from typing import Optional

from .errors import InvalidImageReference

DOCKER_HUB_HOST = 'docker.io'
DEFAULT_TAG = 'latest'

# Hosts that carry no dot or port but are still registries
_WELL_KNOWN_HOSTS = {'localhost'}

_DIGEST_RE = re.compile(r'^[A-Za-z][A-Za-z0-9]*(?:[+._-][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}$')
_TAG_RE = re.compile(r'^[\w][\w.-]{0,127}$')
_REPO_COMPONENT_RE = re.compile(r'^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$')


@dataclass(frozen=True)
class ImageReference:
    """A parsed image string: host, repository and tag or digest"""
    host: str
    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None

    @property
    def url(self) -> str:
        """Host and repository with any tag or digest stripped"""
        return f"{self.host}/{self.repository}"

    @property
    def uses_digest(self) -> bool:
        return self.digest is not None

    def __str__(self) -> str:
        ref = self.url
        if self.tag:
            ref += f":{self.tag}"
        if self.digest:
            ref += f"@{self.digest}"
        return ref


def _looks_like_host(segment: str) -> bool:
    return '.' in segment or ':' in segment or segment in _WELL_KNOWN_HOSTS


def parse_image(image: str) -> ImageReference:
    """
    Parse a free-form image string

    Args:
        image: Image string, e.g. "registry.example.com/ns/repo:tag",
            "nginx" or "repo@sha256:..."

    Returns:
        ImageReference. The tag defaults to "latest" unless a digest is given.

    Raises:
        InvalidImageReference: empty or malformed input
    """
    if not image or not image.strip():
        raise InvalidImageReference('empty image reference')

    image = image.strip()
    if image.count('@') > 1:
        raise InvalidImageReference(f"multiple digests in image reference: {image}")

    name, _, digest = image.partition('@')
    if '@' in image:
        if not _DIGEST_RE.match(digest):
            raise InvalidImageReference(f"invalid digest in image reference: {image}")
    else:
        digest = None

    # Tag separator only counts in the last path component, the host may carry a port
    tag = None
    last_slash = name.rfind('/')
    colon = name.rfind(':')
    if colon > last_slash:
        name, tag = name[:colon], name[colon + 1:]
        if not _TAG_RE.match(tag):
            raise InvalidImageReference(f"invalid tag in image reference: {image}")

    first, sep, rest = name.partition('/')
    if sep and _looks_like_host(first):
        host, repository = first, rest
    else:
        host, repository = DOCKER_HUB_HOST, name

    if not host or not repository:
        raise InvalidImageReference(f"missing repository in image reference: {image}")
    for component in repository.split('/'):
        if not _REPO_COMPONENT_RE.match(component):
            raise InvalidImageReference(f"invalid repository in image reference: {image}")

    if tag is None and digest is None:
        tag = DEFAULT_TAG

    return ImageReference(host=host, repository=repository, tag=tag, digest=digest)
