"""
Amazon Elastic Container Registry client
"""

import logging
import re
import threading
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)

from .base import DEFAULT_TIMEOUT, RegistryClient, TagDescriptor
from .errors import (
    AuthenticationFailed,
    InvalidRegistryConfig,
    RateLimited,
    RegistryError,
    RegistryUnreachable,
    RepositoryNotFound,
)

logger = logging.getLogger(__name__)

ECR_HOST_RE = re.compile(r'^(\d{12})\.dkr\.ecr(?:-fips)?\.([a-z0-9-]+)\.amazonaws\.com(?:\.cn)?$')

_NOT_FOUND_CODES = {'RepositoryNotFoundException', 'RegistryNotFoundException', 'ImageNotFoundException'}
_THROTTLE_CODES = {'ThrottlingException', 'TooManyRequestsException', 'LimitExceededException'}
_AUTH_CODES = {
    'AccessDeniedException',
    'ExpiredTokenException',
    'InvalidClientTokenId',
    'InvalidSignatureException',
    'UnrecognizedClientException',
}


def parse_ecr_host(host: str) -> Optional[Tuple[str, str]]:
    """
    Split an ECR host into (account id, region)

    "123456789012.dkr.ecr.eu-west-1.amazonaws.com" -> ("123456789012", "eu-west-1")
    """
    match = ECR_HOST_RE.match(host)
    if not match:
        return None
    return match.group(1), match.group(2)


def is_ecr_host(host: str) -> bool:
    return parse_ecr_host(host) is not None


class ECRClient(RegistryClient):
    """Client for ECR, one boto3 client per region"""

    kind = 'ecr'

    def __init__(
        self,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        session_token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize ECR client

        Without keys the default AWS credential chain applies.

        Args:
            access_key_id: AWS access key id
            secret_access_key: AWS secret access key
            session_token: Session token for temporary credentials (optional)
            timeout: Connect and read timeout in seconds
        """
        super().__init__(timeout)
        if bool(access_key_id) != bool(secret_access_key):
            raise InvalidRegistryConfig('ecr requires both access_key_id and secret_access_key')
        if session_token and not access_key_id:
            raise InvalidRegistryConfig('ecr session_token requires access_key_id and secret_access_key')

        self._session = boto3.session.Session(
            aws_access_key_id=access_key_id or None,
            aws_secret_access_key=secret_access_key or None,
            aws_session_token=session_token or None,
        )
        self._clients = {}
        self._clients_lock = threading.Lock()

    def _client_for(self, region: str):
        with self._clients_lock:
            client = self._clients.get(region)
            if client is None:
                client = self._session.client(
                    'ecr',
                    region_name=region,
                    config=BotoConfig(
                        connect_timeout=self.timeout,
                        read_timeout=self.timeout,
                        retries={'max_attempts': 2},
                    ),
                )
                self._clients[region] = client
            return client

    def _locate(self, host: str, repository: str) -> Tuple[str, str]:
        located = parse_ecr_host(host)
        if located is None:
            raise RegistryError(f"{host} is not an ECR registry host", host, repository)
        return located

    def _translate(self, error: Exception, host: str, repository: str) -> RegistryError:
        if isinstance(error, ClientError):
            code = error.response.get('Error', {}).get('Code', '')
            message = f"{host}/{repository}: {code}: {error}"
            if code in _NOT_FOUND_CODES:
                return RepositoryNotFound(message, host, repository)
            if code in _THROTTLE_CODES:
                return RateLimited(message, host, repository)
            if code in _AUTH_CODES:
                return AuthenticationFailed(message, host, repository)
            return RegistryError(message, host, repository)
        if isinstance(error, (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError)):
            return RegistryUnreachable(f"{host}: {error}", host, repository)
        if isinstance(error, NoCredentialsError):
            return AuthenticationFailed(f"{host}: no AWS credentials available", host, repository)
        return RegistryError(f"{host}/{repository}: {error}", host, repository)

    def _authorize(self, host: str, repository: str):
        """
        Request a registry authorization token once per registry

        The token is not needed for the API calls themselves, but obtaining it
        verifies the credentials against the registry up front.
        """
        account, region = self._locate(host, repository)

        def fetch():
            try:
                data = self._client_for(region).get_authorization_token(registryIds=[account])
            except (ClientError, BotoCoreError) as e:
                raise self._translate(e, host, repository) from e

            auth_data = (data.get('authorizationData') or [{}])[0]
            expires_at = auth_data.get('expiresAt')
            ttl = None
            if isinstance(expires_at, datetime):
                ttl = (expires_at - datetime.now(timezone.utc)).total_seconds()
            logger.debug("Obtained ECR authorization token for %s", host)
            return auth_data.get('authorizationToken'), ttl

        self._tokens.get(host, fetch)
        return account, region

    def list_tags(self, host: str, repository: str) -> List[TagDescriptor]:
        account, region = self._authorize(host, repository)
        client = self._client_for(region)

        tags = []
        try:
            paginator = client.get_paginator('describe_images')
            pages = paginator.paginate(
                registryId=account,
                repositoryName=repository,
                filter={'tagStatus': 'TAGGED'},
            )
            for page in pages:
                for detail in page.get('imageDetails') or []:
                    tags.extend(self._parse_detail(detail))
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, host, repository) from e

        return tags

    def get_manifest(self, host: str, repository: str, reference: str) -> TagDescriptor:
        account, region = self._authorize(host, repository)

        image_id = {'imageDigest': reference} if reference.startswith('sha256:') else {'imageTag': reference}
        try:
            data = self._client_for(region).describe_images(
                registryId=account,
                repositoryName=repository,
                imageIds=[image_id],
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, host, repository) from e

        details = data.get('imageDetails') or []
        if not details:
            raise RepositoryNotFound(f"{host}/{repository}: {reference} not found", host, repository)

        detail = details[0]
        return TagDescriptor(
            name=reference,
            created=detail.get('imagePushedAt'),
            digest=detail.get('imageDigest'),
            size=detail.get('imageSizeInBytes'),
            metadata={'mediaType': detail.get('imageManifestMediaType')},
        )

    def _parse_detail(self, detail: dict) -> List[TagDescriptor]:
        return [
            TagDescriptor(
                name=tag,
                created=detail.get('imagePushedAt'),
                digest=detail.get('imageDigest'),
                size=detail.get('imageSizeInBytes'),
                metadata={'mediaType': detail.get('imageManifestMediaType')},
            )
            for tag in detail.get('imageTags') or []
        ]
