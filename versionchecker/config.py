"""
Configuration for the version checker

Example:

    k8s:
      kubeconfig: /home/someone/.kube/config
      exclude-namespaces:
      - kube-system
    registries:
    - kind: selfhosted
      params:
        host: /etc/secrets/registry-host
        bearer: /etc/secrets/registry-token
    max-workers: 10
    timeout: 30

Any registry param naming an existing file is replaced by the file's
trimmed contents, so secrets can be mounted rather than inlined.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 10
DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class GroupVersionResource:
    group: str = ''
    version: str = ''
    resource: str = ''

    def __str__(self) -> str:
        prefix = f"{self.group}/" if self.group else ''
        return f"{prefix}{self.version}/{self.resource}"


# The only resource type the gatherer scans
POD_RESOURCE = GroupVersionResource(group='', version='v1', resource='pods')


class RegistryKind(str, Enum):
    ACR = 'acr'
    ECR = 'ecr'
    GCR = 'gcr'
    DOCKER_HUB = 'docker'
    QUAY = 'quay'
    SELF_HOSTED = 'selfhosted'

    @classmethod
    def parse(cls, value: Any) -> 'RegistryKind':
        text = str(value).strip().lower()
        if text == 'dockerhub':
            return cls.DOCKER_HUB
        try:
            return cls(text)
        except ValueError:
            kinds = ', '.join(k.value for k in cls)
            raise ConfigError(f"unknown registry kind '{value}' (expected one of: {kinds})") from None


@dataclass
class ClusterAccess:
    """
    Cluster connection and namespace policy

    Attributes:
        kubeconfig: Path to a kubeconfig; empty means in-cluster or default config
        resource_type: Always the pods resource, whatever was configured
        exclude_namespaces: Namespaces whose pods are skipped
        include_namespaces: When non-empty, the only namespaces scanned
    """
    kubeconfig: str = ''
    resource_type: GroupVersionResource = POD_RESOURCE
    exclude_namespaces: List[str] = field(default_factory=list)
    include_namespaces: List[str] = field(default_factory=list)


@dataclass
class RegistryConfig:
    kind: RegistryKind
    params: Dict[str, str] = field(default_factory=dict)
    name: str = ''

    def param(self, key: str) -> Optional[str]:
        value = self.params.get(key)
        return value if value else None


def resolve_secret(value: str) -> str:
    """Return the trimmed contents of value if it names a file, else value unchanged"""
    if value and os.path.isfile(value):
        try:
            with open(value, 'r') as f:
                return f.read().strip()
        except OSError as e:
            raise ConfigError(f"failed to read secret file {value}: {e}") from e
    return value


def _string_list(data: Dict[str, Any], key: str) -> List[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"k8s.{key} must be a list of namespaces")
    return [str(v) for v in value]


def _parse_cluster(data: Any) -> ClusterAccess:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError('k8s must be a mapping')

    configured = data.get('resource-type')
    if configured is not None:
        if not isinstance(configured, dict):
            raise ConfigError('k8s.resource-type must be a mapping of group, version and resource')
        gvr = GroupVersionResource(
            group=str(configured.get('group') or ''),
            version=str(configured.get('version') or ''),
            resource=str(configured.get('resource') or ''),
        )
        if gvr != POD_RESOURCE:
            logger.warning("Ignoring k8s.resource-type %s, only %s are checked", gvr, POD_RESOURCE)

    return ClusterAccess(
        kubeconfig=os.path.expanduser(str(data.get('kubeconfig') or '')),
        resource_type=POD_RESOURCE,
        exclude_namespaces=_string_list(data, 'exclude-namespaces'),
        include_namespaces=_string_list(data, 'include-namespaces'),
    )


def _parse_registries(data: Any) -> List[RegistryConfig]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise ConfigError('registries must be a list')

    registries = []
    for index, entry in enumerate(data, start=1):
        if not isinstance(entry, dict) or 'kind' not in entry:
            raise ConfigError(f"registries[{index - 1}] must be a mapping with a kind")

        kind = RegistryKind.parse(entry['kind'])
        params = entry.get('params') or {}
        if not isinstance(params, dict):
            raise ConfigError(f"registries[{index - 1}].params must be a mapping")

        resolved = {
            str(key): resolve_secret(str(value)) if value is not None else ''
            for key, value in params.items()
        }
        registries.append(RegistryConfig(kind=kind, params=resolved, name=f"{kind.value}-{index}"))

    return registries


@dataclass
class Config:
    """Top level settings: cluster access plus the configured registries"""
    cluster: ClusterAccess = field(default_factory=ClusterAccess)
    registries: List[RegistryConfig] = field(default_factory=list)
    max_workers: int = DEFAULT_MAX_WORKERS
    timeout: float = DEFAULT_TIMEOUT

    @staticmethod
    def from_dict(data: Optional[Dict[str, Any]]) -> 'Config':
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigError('configuration must be a mapping')

        try:
            max_workers = int(data.get('max-workers', DEFAULT_MAX_WORKERS))
            timeout = float(data.get('timeout', DEFAULT_TIMEOUT))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid max-workers or timeout: {e}") from e
        if max_workers < 1:
            raise ConfigError('max-workers must be at least 1')
        if timeout <= 0:
            raise ConfigError('timeout must be positive')

        return Config(
            cluster=_parse_cluster(data.get('k8s')),
            registries=_parse_registries(data.get('registries')),
            max_workers=max_workers,
            timeout=timeout,
        )

    @staticmethod
    def from_yaml(text: str) -> 'Config':
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"invalid YAML configuration: {e}") from e
        return Config.from_dict(data)

    @staticmethod
    def load(path: Union[str, Path]) -> 'Config':
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigError(f"config file not found: {config_path}")

        with open(config_path, 'r') as f:
            return Config.from_yaml(f.read())

    def new_data_gatherer(self):
        """
        Build a DataGatherer for this configuration

        Raises:
            ClientConstructionError: bad kubeconfig or registry params
        """
        from .gatherer import DataGatherer

        return DataGatherer(self)
