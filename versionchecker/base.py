"""
Base registry client class
"""

import base64
import json
import logging
import re
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple
from urllib.parse import urljoin

import requests
import semver

from .errors import (
    AuthenticationFailed,
    RateLimited,
    RegistryError,
    RegistryUnreachable,
    RepositoryNotFound,
)

logger = logging.getLogger(__name__)

USER_AGENT = 'image-version-checker/0.1.0'
DEFAULT_TIMEOUT = 30.0

MANIFEST_ACCEPT = ', '.join([
    'application/vnd.oci.image.index.v1+json',
    'application/vnd.docker.distribution.manifest.list.v2+json',
    'application/vnd.oci.image.manifest.v1+json',
    'application/vnd.docker.distribution.manifest.v2+json',
])


def parse_version(tag: str) -> Optional[semver.Version]:
    """
    Parse a tag as a semantic version

    A leading "v" is accepted and missing minor/patch parts default to zero,
    so "v1.2" parses as 1.2.0.

    Returns:
        semver.Version, or None when the tag is not a version
    """
    if not isinstance(tag, str) or not tag:
        return None
    candidate = tag[1:] if tag[:1] in ('v', 'V') else tag
    try:
        return semver.Version.parse(candidate, optional_minor_and_patch=True)
    except (ValueError, TypeError):
        return None


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00'))
    except (ValueError, AttributeError):
        return None


def jwt_ttl(token: str) -> Optional[float]:
    """Seconds until a JWT's exp claim, or None if it cannot be read"""
    try:
        payload = token.split('.')[1]
        payload += '=' * (-len(payload) % 4)
        claims = json.loads(base64.urlsafe_b64decode(payload))
        return float(claims['exp']) - time.time()
    except (IndexError, KeyError, TypeError, ValueError):
        return None


@dataclass
class TagDescriptor:
    """Represents a container image tag with metadata"""
    name: str
    created: Optional[datetime] = None
    digest: Optional[str] = None
    size: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None

    @property
    def version(self) -> Optional[semver.Version]:
        return parse_version(self.name)

    def __repr__(self) -> str:
        created_str = self.created.isoformat() if self.created else 'unknown'
        return f"TagDescriptor(name='{self.name}', created='{created_str}')"


class TokenCache:
    """
    Thread-safe cache of short lived registry tokens

    Fetching is single-flight per key: concurrent callers that miss the cache
    wait on one handshake instead of each performing their own.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._key_locks: Dict[Any, threading.Lock] = {}
        self._tokens: Dict[Any, Tuple[Optional[str], Optional[float]]] = {}

    def get(self, key: Any, fetch: Callable[[], Tuple[Optional[str], Optional[float]]]) -> Optional[str]:
        """
        Return the cached token for key, fetching it when missing or expired

        Args:
            key: Cache key, usually (host, scope)
            fetch: Callable returning (token, expires_in_seconds or None)
        """
        with self._lock:
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            entry = self._tokens.get(key)
            if entry is not None and (entry[1] is None or entry[1] > time.monotonic()):
                return entry[0]

            token, expires_in = fetch()
            # Refresh a little early so a token does not expire mid-request
            expires_at = time.monotonic() + max(float(expires_in) - 5.0, 0.0) if expires_in else None
            self._tokens[key] = (token, expires_at)
            return token

    def peek(self, key: Any) -> Optional[str]:
        """Return the cached token for key without fetching"""
        with self._lock:
            entry = self._tokens.get(key)
        if entry is None or (entry[1] is not None and entry[1] <= time.monotonic()):
            return None
        return entry[0]

    def invalidate(self, key: Any, token: Optional[str]):
        """Drop the cached token for key, but only if it is the rejected one"""
        with self._lock:
            entry = self._tokens.get(key)
            if entry is not None and entry[0] == token:
                del self._tokens[key]


def parse_bearer_challenge(header: str) -> Optional[Dict[str, str]]:
    """
    Parse a WWW-Authenticate header of the form
    Bearer realm="...",service="...",scope="..."

    Returns:
        Dict with realm and optional service/scope, or None for other schemes
    """
    if not header or not header.lower().startswith('bearer'):
        return None

    challenge = {}
    for field in ('realm', 'service', 'scope'):
        match = re.search(rf'{field}="([^"]*)"', header)
        if match:
            challenge[field] = match.group(1)

    if 'realm' not in challenge:
        return None
    return challenge


class RegistryClient(ABC):
    """Abstract base class for registry clients"""

    kind = ''

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        """
        Initialize client

        Args:
            timeout: Timeout for each HTTP request in seconds
        """
        self.timeout = timeout
        self._local = threading.local()
        self._tokens = TokenCache()

    @property
    def session(self) -> requests.Session:
        """HTTP session of the calling thread; clients are shared by the gatherer's workers"""
        session = getattr(self._local, 'session', None)
        if session is None:
            session = requests.Session()
            session.headers.update({
                'User-Agent': USER_AGENT
            })
            self._local.session = session
        return session

    @abstractmethod
    def list_tags(self, host: str, repository: str) -> List[TagDescriptor]:
        """
        List all tags for a repository

        Args:
            host: Registry host the image was pulled from
            repository: Repository path (e.g., "jetstack/example")

        Returns:
            List of TagDescriptor objects
        """
        pass

    @abstractmethod
    def get_manifest(self, host: str, repository: str, reference: str) -> TagDescriptor:
        """
        Get manifest metadata for a tag or digest

        Args:
            host: Registry host
            repository: Repository path
            reference: Tag name or digest

        Returns:
            TagDescriptor object with digest (and creation time where known)
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    # HTTP plumbing shared by the requests based clients

    def _request(self, method: str, url: str, host: str, repository: Optional[str] = None,
                 **kwargs) -> requests.Response:
        kwargs.setdefault('timeout', self.timeout)
        try:
            return self.session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as e:
            raise RegistryUnreachable(f"request to {host} failed: {e}", host, repository) from e

    def _raise_for_status(self, response: requests.Response, host: str, repository: Optional[str] = None):
        code = response.status_code
        if code < 400:
            return

        where = f"{host}/{repository}" if repository else host
        if code in (401, 403):
            raise AuthenticationFailed(f"{where}: authentication rejected (HTTP {code})", host, repository)
        if code == 404:
            raise RepositoryNotFound(f"{where}: repository not found", host, repository)
        if code == 429:
            raise RateLimited(
                f"{where}: rate limited",
                host,
                repository,
                retry_after=response.headers.get('Retry-After'),
            )
        raise RegistryError(f"{where}: unexpected response HTTP {code}", host, repository)

    def _json(self, response: requests.Response, host: str, repository: Optional[str] = None) -> Dict[str, Any]:
        """Decode a JSON object body, raising RegistryError for anything else"""
        try:
            data = response.json()
        except ValueError as e:
            raise RegistryError(f"{host}: response is not valid JSON", host, repository) from e
        if not isinstance(data, dict):
            raise RegistryError(
                f"{host}: expected a JSON object, got {type(data).__name__}", host, repository
            )
        return data

    def _authorized_get(
        self,
        url: str,
        host: str,
        repository: Optional[str],
        token_key: Any,
        fetch_token: Callable[[], Tuple[Optional[str], Optional[float]]],
        scheme: str = 'Bearer',
        **kwargs,
    ) -> requests.Response:
        """
        GET with a cached token, re-authenticating once on HTTP 401

        A None token sends the request without an Authorization header.
        """
        headers = dict(kwargs.pop('headers', None) or {})

        for attempt in range(2):
            token = self._tokens.get(token_key, fetch_token)
            if token:
                headers['Authorization'] = f'{scheme} {token}'
            else:
                headers.pop('Authorization', None)

            response = self._request('GET', url, host, repository, headers=headers, **kwargs)
            if response.status_code == 401 and attempt == 0:
                logger.debug("Token for %s rejected, re-authenticating", host)
                self._tokens.invalidate(token_key, token)
                continue
            break

        self._raise_for_status(response, host, repository)
        return response

    def _challenge_token(self, response: requests.Response, host: str, repository: Optional[str],
                         auth: Optional[Tuple[str, str]] = None) -> Tuple[Optional[str], Optional[float]]:
        """
        Answer a Bearer challenge from a 401 response by requesting a token from its realm

        Args:
            response: The 401 response carrying WWW-Authenticate
            auth: Optional (username, password) presented to the token endpoint

        Returns:
            (token, expires_in)
        """
        challenge = parse_bearer_challenge(response.headers.get('WWW-Authenticate', ''))
        if challenge is None:
            raise AuthenticationFailed(f"{host}: authentication required", host, repository)

        params = {}
        if 'service' in challenge:
            params['service'] = challenge['service']
        if 'scope' in challenge:
            params['scope'] = challenge['scope']
        elif repository:
            params['scope'] = f"repository:{repository}:pull"

        token_response = self._request('GET', challenge['realm'], host, repository, params=params, auth=auth)
        self._raise_for_status(token_response, host, repository)
        data = self._json(token_response, host, repository)

        token = data.get('token') or data.get('access_token')
        if not token:
            raise AuthenticationFailed(f"{host}: token endpoint returned no token", host, repository)
        return token, data.get('expires_in')

    def _v2_get(
        self,
        base_url: str,
        host: str,
        repository: str,
        path: str,
        basic: Optional[Tuple[str, str]] = None,
        bearer: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        """
        GET against the standard registry HTTP API

        A static bearer token is sent as is. Otherwise the request goes out
        with basic credentials (or anonymously) and a Bearer challenge in a
        401 response is answered through the token realm, the resulting token
        being cached per repository.
        """
        url = path if '://' in path else f"{base_url}{path}"
        headers = dict(headers or {})

        if bearer:
            headers['Authorization'] = f'Bearer {bearer}'
            response = self._request('GET', url, host, repository, headers=headers)
            self._raise_for_status(response, host, repository)
            return response

        key = (host, repository)
        token = self._tokens.peek(key)
        if token:
            headers['Authorization'] = f'Bearer {token}'
            response = self._request('GET', url, host, repository, headers=headers)
        else:
            response = self._request('GET', url, host, repository, headers=headers, auth=basic)

        if response.status_code == 401:
            self._tokens.invalidate(key, token)
            challenge_response = response
            token = self._tokens.get(
                key, lambda: self._challenge_token(challenge_response, host, repository, auth=basic)
            )
            headers['Authorization'] = f'Bearer {token}'
            response = self._request('GET', url, host, repository, headers=headers)

        self._raise_for_status(response, host, repository)
        return response

    def _v2_tag_pages(
        self,
        base_url: str,
        host: str,
        repository: str,
        basic: Optional[Tuple[str, str]] = None,
        bearer: Optional[str] = None,
    ) -> Iterator[Dict[str, Any]]:
        """
        Yield every page of /v2/<repo>/tags/list

        Registries that page the listing (n/last) advertise the following page
        in a Link header with rel="next"; the link may be relative.
        """
        path = f"/v2/{repository}/tags/list"
        seen = set()

        while path and path not in seen:
            seen.add(path)
            response = self._v2_get(base_url, host, repository, path, basic=basic, bearer=bearer)
            yield self._json(response, host, repository)

            link = response.links.get('next', {}).get('url')
            path = urljoin(response.url, link) if link else None

    def _v2_tag_names(self, page: Dict[str, Any], host: str, repository: str) -> List[str]:
        tags = page.get('tags') or []
        if not isinstance(tags, list):
            raise RegistryError(f"{host}/{repository}: malformed tag list", host, repository)

        names = [tag for tag in tags if isinstance(tag, str) and tag]
        if len(names) != len(tags):
            logger.debug("Ignoring %d malformed tag names for %s/%s", len(tags) - len(names), host, repository)
        return names

    def _manifest_descriptor(self, response: requests.Response, reference: str, host: str,
                             repository: str) -> TagDescriptor:
        """Build a TagDescriptor from a /v2/<repo>/manifests/<ref> response"""
        manifest = self._json(response, host, repository)

        digest = response.headers.get('Docker-Content-Digest')
        if digest is None and reference.startswith('sha256:'):
            digest = reference

        size = None
        layers = manifest.get('layers') or []
        if layers:
            size = sum(layer.get('size', 0) for layer in layers)

        return TagDescriptor(
            name=manifest.get('tag') or reference,
            digest=digest,
            size=size,
            metadata={
                'schemaVersion': manifest.get('schemaVersion'),
                'mediaType': manifest.get('mediaType') or response.headers.get('Content-Type'),
            },
        )
