"""
Exception hierarchy for the version checker
"""

from typing import Optional


class VersionCheckerError(Exception):
    """Base class for every error raised by this package"""


class ConfigError(VersionCheckerError):
    """Malformed or missing configuration"""


class ClientConstructionError(VersionCheckerError):
    """A cluster or registry client could not be built from configuration"""


class InvalidRegistryConfig(ClientConstructionError):
    """Registry params are incomplete or contradictory"""


class InvalidImageReference(VersionCheckerError):
    """An image string could not be parsed"""


class FetchCancelled(VersionCheckerError):
    """Fetch was cancelled by the caller"""


# Cluster scan errors are fatal to a whole fetch.

class ClusterScanError(VersionCheckerError):
    """Listing workloads from the cluster failed"""


class ClusterUnreachable(ClusterScanError):
    pass


class ClusterAuthError(ClusterScanError):
    pass


# Registry errors are scoped to a single image.

class RegistryError(VersionCheckerError):
    """
    Failure talking to a container registry

    Args:
        message: Human readable description
        host: Registry host the call was made against
        repository: Repository being queried
    """

    def __init__(self, message: str, host: Optional[str] = None, repository: Optional[str] = None):
        super().__init__(message)
        self.host = host
        self.repository = repository

    @property
    def kind(self) -> str:
        return type(self).__name__


class AuthenticationFailed(RegistryError):
    pass


class RepositoryNotFound(RegistryError):
    pass


class RegistryUnreachable(RegistryError):
    pass


class RateLimited(RegistryError):

    def __init__(self, message: str, host: Optional[str] = None, repository: Optional[str] = None,
                 retry_after: Optional[str] = None):
        super().__init__(message, host, repository)
        self.retry_after = retry_after


class NoRegistryForHost(RegistryError):
    pass


class NoTagsFound(RegistryError):
    pass


class TagListFailed(RegistryError):
    pass
