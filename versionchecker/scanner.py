"""
Workload scanner - lists pods from the cluster as untyped documents
"""

import json
import logging
from typing import Any, Dict, Iterator, List, Optional

import urllib3
import yaml
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from .config import POD_RESOURCE, ClusterAccess
from .errors import ClientConstructionError, ClusterAuthError, ClusterScanError, ClusterUnreachable

logger = logging.getLogger(__name__)

Workload = Dict[str, Any]

PAGE_SIZE = 500


def load_api_client(kubeconfig: str = '') -> client.ApiClient:
    """
    Build a Kubernetes API client

    Args:
        kubeconfig: Path to a kubeconfig file. When empty, in-cluster
            configuration is tried first, then the default kubeconfig.

    Raises:
        ClientConstructionError: the configuration cannot be loaded
    """
    try:
        if kubeconfig:
            return config.new_client_from_config(config_file=kubeconfig)

        try:
            configuration = client.Configuration()
            config.load_incluster_config(client_configuration=configuration)
            return client.ApiClient(configuration)
        except ConfigException:
            return config.new_client_from_config()
    except (ConfigException, OSError, ValueError, yaml.YAMLError) as e:
        raise ClientConstructionError(f"failed to load kubeconfig {kubeconfig or '(default)'}: {e}") from e


def namespace_of(workload: Workload) -> str:
    return (workload.get('metadata') or {}).get('namespace') or ''


class WorkloadScanner:
    """
    Lists pods honoring the namespace policy

    Exclusion is applied first and inclusion narrows further: a pod is kept
    when its namespace is not excluded and, if an include list is set, is in
    that list.
    """

    def __init__(self, cluster: ClusterAccess, timeout: float = 30.0,
                 api_client: Optional[client.ApiClient] = None):
        self.cluster = cluster
        self.timeout = timeout
        # Only pods are ever scanned, regardless of configuration
        self.resource = POD_RESOURCE
        self.api = client.CoreV1Api(api_client or load_api_client(cluster.kubeconfig))

    def allows(self, namespace: str) -> bool:
        if namespace in self.cluster.exclude_namespaces:
            return False
        if self.cluster.include_namespaces:
            return namespace in self.cluster.include_namespaces
        return True

    def _field_selector(self) -> Optional[str]:
        if not self.cluster.exclude_namespaces:
            return None
        return ','.join(f"metadata.namespace!={ns}" for ns in self.cluster.exclude_namespaces)

    def _pages(self, namespace: Optional[str]) -> Iterator[Dict[str, Any]]:
        kwargs = {
            'limit': PAGE_SIZE,
            '_preload_content': False,
            '_request_timeout': self.timeout,
        }
        selector = self._field_selector()
        if selector:
            kwargs['field_selector'] = selector

        while True:
            if namespace:
                response = self.api.list_namespaced_pod(namespace, **kwargs)
            else:
                response = self.api.list_pod_for_all_namespaces(**kwargs)

            page = json.loads(response.data)
            yield page

            token = (page.get('metadata') or {}).get('continue')
            if not token:
                break
            kwargs['_continue'] = token

    def _list(self, namespace: Optional[str]) -> List[Workload]:
        pods = []
        for page in self._pages(namespace):
            for item in page.get('items') or []:
                # List responses omit kind and apiVersion on items
                pods.append({'kind': 'Pod', 'apiVersion': 'v1', **item})
        return pods

    def list(self) -> List[Workload]:
        """
        List pods from the cluster in API order

        Returns:
            Pod documents as plain dicts

        Raises:
            ClusterAuthError: the API rejected our credentials
            ClusterUnreachable: the API server could not be reached
            ClusterScanError: any other listing failure
        """
        try:
            if self.cluster.include_namespaces:
                pods = []
                for namespace in self.cluster.include_namespaces:
                    if self.allows(namespace):
                        pods.extend(self._list(namespace))
            else:
                pods = self._list(None)
        except ApiException as e:
            if e.status in (401, 403):
                raise ClusterAuthError(f"cluster rejected credentials: {e.status} {e.reason}") from e
            raise ClusterScanError(f"listing {self.resource} failed: {e.status} {e.reason}") from e
        except (urllib3.exceptions.HTTPError, OSError) as e:
            raise ClusterUnreachable(f"cluster unreachable: {e}") from e
        except ValueError as e:
            raise ClusterScanError(f"malformed pod list response: {e}") from e

        workloads = [pod for pod in pods if self.allows(namespace_of(pod))]
        logger.info("Found %d pods (%d filtered by namespace)", len(workloads), len(pods) - len(workloads))
        return workloads


def container_images(workload: Workload) -> List[str]:
    """Image strings of a pod's containers, then its init containers, in spec order"""
    spec = workload.get('spec') or {}
    images = []
    for key in ('containers', 'initContainers'):
        for container in spec.get(key) or []:
            images.append(container.get('image') or '')
    return images
