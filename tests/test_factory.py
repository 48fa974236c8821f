import pytest

from versionchecker.acr import ACRClient
from versionchecker.config import RegistryConfig, RegistryKind
from versionchecker.docker_hub import DockerHubClient
from versionchecker.ecr import ECRClient
from versionchecker.errors import InvalidRegistryConfig, NoRegistryForHost
from versionchecker.factory import RegistryClientFactory, build_client
from versionchecker.gcr import GCRClient
from versionchecker.quay import QuayClient
from versionchecker.selfhosted import SelfHostedClient


def registry(kind, **params):
    return RegistryConfig(kind=kind, params=params, name=f"{kind.value}-1")


@pytest.mark.parametrize('config,expected', [
    (registry(RegistryKind.ACR, refresh_token='rt'), ACRClient),
    (registry(RegistryKind.ACR, username='u', password='p'), ACRClient),
    (registry(RegistryKind.ECR, access_key_id='AKIA', secret_access_key='s', session_token='t'), ECRClient),
    (registry(RegistryKind.GCR, token='t'), GCRClient),
    (registry(RegistryKind.DOCKER_HUB, token='t'), DockerHubClient),
    (registry(RegistryKind.DOCKER_HUB), DockerHubClient),
    (registry(RegistryKind.QUAY, token='t'), QuayClient),
    (registry(RegistryKind.SELF_HOSTED, host='registry.local', bearer='t'), SelfHostedClient),
])
def test_build_client(config, expected):
    assert isinstance(build_client(config), expected)


@pytest.mark.parametrize('config', [
    registry(RegistryKind.ACR),
    registry(RegistryKind.ACR, username='u'),
    registry(RegistryKind.ECR, access_key_id='AKIA'),
    registry(RegistryKind.ECR, session_token='t'),
    registry(RegistryKind.GCR),
    registry(RegistryKind.DOCKER_HUB, username='u'),
    registry(RegistryKind.QUAY),
    registry(RegistryKind.SELF_HOSTED, bearer='t'),
    registry(RegistryKind.SELF_HOSTED, host='registry.local', username='u', password='p', bearer='t'),
    registry(RegistryKind.SELF_HOSTED, host='registry.local', username='u'),
    registry(RegistryKind.SELF_HOSTED, host='ftp://registry.local'),
])
def test_build_client_rejects_invalid_params(config):
    with pytest.raises(InvalidRegistryConfig):
        build_client(config)


def test_self_hosted_host_strips_scheme():
    client = build_client(registry(RegistryKind.SELF_HOSTED, host='http://127.0.0.1:5000/'))

    assert client.host == '127.0.0.1:5000'
    assert client.base_url == 'http://127.0.0.1:5000'


@pytest.fixture
def factory():
    return RegistryClientFactory([
        RegistryConfig(RegistryKind.ACR, {'refresh_token': 'rt'}, 'acr-1'),
        RegistryConfig(RegistryKind.ECR, {'access_key_id': 'AKIA', 'secret_access_key': 's'}, 'ecr-2'),
        RegistryConfig(RegistryKind.SELF_HOSTED, {'host': 'https://registry.local', 'bearer': 't'}, 'selfhosted-3'),
        RegistryConfig(RegistryKind.SELF_HOSTED, {'host': 'http://127.0.0.1:5000'}, 'selfhosted-4'),
    ])


@pytest.mark.parametrize('host,expected', [
    ('myregistry.azurecr.io', ACRClient),
    ('123456789012.dkr.ecr.eu-west-1.amazonaws.com', ECRClient),
    ('gcr.io', GCRClient),
    ('eu.gcr.io', GCRClient),
    ('europe-west1-docker.pkg.dev', GCRClient),
    ('quay.io', QuayClient),
    ('docker.io', DockerHubClient),
    ('registry-1.docker.io', DockerHubClient),
])
def test_resolve_provider_hosts(factory, host, expected):
    assert isinstance(factory.resolve(host), expected)


def test_resolve_self_hosted_by_exact_host(factory):
    assert factory.resolve('registry.local').name == 'selfhosted-3'
    assert factory.resolve('127.0.0.1:5000').name == 'selfhosted-4'


def test_resolve_reuses_clients(factory):
    assert factory.resolve('quay.io') is factory.resolve('quay.io')
    assert factory.resolve('gcr.io') is factory.resolve('us.gcr.io')


def test_resolve_unknown_host(factory):
    with pytest.raises(NoRegistryForHost):
        factory.resolve('registry.other.example.com')

    with pytest.raises(NoRegistryForHost):
        factory.resolve('127.0.0.1:5001')


@pytest.mark.parametrize('host', [
    'myregistry.azurecr.io',
    '123456789012.dkr.ecr.us-east-1.amazonaws.com',
])
def test_cloud_hosts_need_configuration(host):
    with pytest.raises(NoRegistryForHost):
        RegistryClientFactory([]).resolve(host)


def test_duplicate_self_hosted_hosts_rejected():
    with pytest.raises(InvalidRegistryConfig):
        RegistryClientFactory([
            RegistryConfig(RegistryKind.SELF_HOSTED, {'host': 'registry.local'}, 'selfhosted-1'),
            RegistryConfig(RegistryKind.SELF_HOSTED, {'host': 'https://registry.local'}, 'selfhosted-2'),
        ])


def test_configured_client_preferred_over_anonymous():
    factory = RegistryClientFactory([RegistryConfig(RegistryKind.DOCKER_HUB, {'token': 't'}, 'docker-1')])

    client = factory.resolve('docker.io')

    assert isinstance(client, DockerHubClient)
    assert not client.anonymous
