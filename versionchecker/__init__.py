"""
Image Version Checker

Checks the images running in a Kubernetes cluster against their registries.
Supports ACR, ECR, GCR, Docker Hub, Quay.io and self-hosted registries.
"""

from .base import RegistryClient, TagDescriptor
from .config import Config, RegistryConfig, RegistryKind
from .factory import RegistryClientFactory, build_client
from .gatherer import DataGatherer, ResultRecord, dumps
from .image import ImageReference, parse_image
from .resolver import Result, VersionResolver, resolve_version

__all__ = [
    'RegistryClient',
    'TagDescriptor',
    'Config',
    'RegistryConfig',
    'RegistryKind',
    'RegistryClientFactory',
    'build_client',
    'DataGatherer',
    'ResultRecord',
    'dumps',
    'ImageReference',
    'parse_image',
    'Result',
    'VersionResolver',
    'resolve_version',
]

__version__ = '0.1.0'
