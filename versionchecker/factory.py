"""
Registry client construction and host resolution
"""

import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from .acr import ACRClient, is_acr_host
from .base import DEFAULT_TIMEOUT, RegistryClient
from .config import RegistryConfig, RegistryKind
from .docker_hub import DockerHubClient, is_docker_hub_host
from .ecr import ECRClient, is_ecr_host
from .errors import InvalidRegistryConfig, NoRegistryForHost
from .gcr import GCRClient, is_gcr_host
from .quay import QuayClient, is_quay_host
from .selfhosted import SelfHostedClient, split_host

logger = logging.getLogger(__name__)

KNOWN_PARAMS = {
    RegistryKind.ACR: {'username', 'password', 'refresh_token'},
    RegistryKind.ECR: {'access_key_id', 'secret_access_key', 'session_token'},
    RegistryKind.GCR: {'token'},
    RegistryKind.DOCKER_HUB: {'username', 'password', 'token'},
    RegistryKind.QUAY: {'token'},
    RegistryKind.SELF_HOSTED: {'host', 'username', 'password', 'bearer'},
}

# Provider host patterns, checked in order after exact self-hosted hosts
HOST_MATCHERS: List[Tuple[Callable[[str], bool], RegistryKind]] = [
    (is_acr_host, RegistryKind.ACR),
    (is_ecr_host, RegistryKind.ECR),
    (is_gcr_host, RegistryKind.GCR),
    (is_quay_host, RegistryKind.QUAY),
    (is_docker_hub_host, RegistryKind.DOCKER_HUB),
]


def build_client(config: RegistryConfig, timeout: float = DEFAULT_TIMEOUT) -> RegistryClient:
    """
    Construct the registry client for one configuration entry

    Args:
        config: Registry kind and its resolved params
        timeout: Request timeout in seconds

    Returns:
        RegistryClient for the configured kind

    Raises:
        InvalidRegistryConfig: a required param is absent or params conflict
    """
    unknown = set(config.params) - KNOWN_PARAMS[config.kind]
    if unknown:
        logger.warning("Ignoring unknown params for %s: %s", config.name or config.kind.value,
                       ', '.join(sorted(unknown)))

    p = config.param
    if config.kind == RegistryKind.ACR:
        return ACRClient(p('username'), p('password'), p('refresh_token'), timeout=timeout)

    if config.kind == RegistryKind.ECR:
        return ECRClient(p('access_key_id'), p('secret_access_key'), p('session_token'), timeout=timeout)

    if config.kind == RegistryKind.GCR:
        if not p('token'):
            raise InvalidRegistryConfig('gcr requires a token')
        return GCRClient(p('token'), timeout=timeout)

    if config.kind == RegistryKind.DOCKER_HUB:
        return DockerHubClient(p('username'), p('password'), p('token'), timeout=timeout)

    if config.kind == RegistryKind.QUAY:
        if not p('token'):
            raise InvalidRegistryConfig('quay requires a token')
        return QuayClient(p('token'), timeout=timeout)

    if config.kind == RegistryKind.SELF_HOSTED:
        if not p('host'):
            raise InvalidRegistryConfig(f"{config.name or 'selfhosted'} requires a host")
        return SelfHostedClient(
            p('host'),
            username=p('username'),
            password=p('password'),
            bearer=p('bearer'),
            name=config.name,
            timeout=timeout,
        )

    raise InvalidRegistryConfig(f"unsupported registry kind: {config.kind}")


class RegistryClientFactory:
    """
    Builds every configured client once and maps image hosts onto them

    Self-hosted clients are matched by exact host. Provider hosts are matched
    by pattern; Docker Hub, GCR and Quay fall back to anonymous clients when
    not configured, while ACR and ECR need credentials.
    """

    def __init__(self, registries: List[RegistryConfig], timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout
        self.self_hosted: Dict[str, SelfHostedClient] = {}
        self.providers: Dict[RegistryKind, RegistryClient] = {}

        for config in registries:
            client = build_client(config, timeout)
            if isinstance(client, SelfHostedClient):
                if client.host in self.self_hosted:
                    raise InvalidRegistryConfig(f"duplicate self-hosted registry host: {client.host}")
                self.self_hosted[client.host] = client
                continue

            if config.kind in self.providers:
                logger.warning("Multiple %s registries configured, using %s", config.kind.value, config.name)
            self.providers[config.kind] = client

        self._anonymous: Dict[RegistryKind, Callable[[], RegistryClient]] = {
            RegistryKind.DOCKER_HUB: lambda: DockerHubClient(timeout=self.timeout),
            RegistryKind.GCR: lambda: GCRClient(timeout=self.timeout),
            RegistryKind.QUAY: lambda: QuayClient(timeout=self.timeout),
        }
        self._by_host: Dict[str, RegistryClient] = {}
        self._lock = threading.Lock()

    @property
    def clients(self) -> List[RegistryClient]:
        return list(self.self_hosted.values()) + list(self.providers.values())

    def _provider(self, kind: RegistryKind) -> Optional[RegistryClient]:
        client = self.providers.get(kind)
        if client is None and kind in self._anonymous:
            client = self._anonymous[kind]()
            self.providers[kind] = client
            logger.debug("Using anonymous %s client", kind.value)
        return client

    def resolve(self, host: str) -> RegistryClient:
        """
        Find the client responsible for an image host

        Args:
            host: Image host, e.g. "quay.io" or "registry.local:5000"

        Raises:
            NoRegistryForHost: no configured client claims the host
        """
        _, key = split_host(host)

        with self._lock:
            client = self._by_host.get(key)
            if client is not None:
                return client

            client = self.self_hosted.get(key)
            if client is None:
                for matches, kind in HOST_MATCHERS:
                    if matches(key):
                        client = self._provider(kind)
                        break

            if client is None:
                raise NoRegistryForHost(f"no registry configured for host {key}", key)

            self._by_host[key] = client
            return client
