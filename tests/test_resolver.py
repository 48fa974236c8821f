import pytest

from versionchecker.base import RegistryClient, TagDescriptor, parse_version
from versionchecker.errors import AuthenticationFailed, NoTagsFound, TagListFailed
from versionchecker.image import parse_image
from versionchecker.resolver import Result, VersionResolver, latest_tag, resolve_version

DIGEST_A = 'sha256:' + 'a' * 64
DIGEST_B = 'sha256:' + 'b' * 64


class MemoryClient(RegistryClient):
    """Registry client answering from a dict of repository -> tags"""

    kind = 'memory'

    def __init__(self, repositories=None, error=None, manifests=None):
        super().__init__()
        self.repositories = repositories or {}
        self.error = error
        self.manifests = manifests or {}
        self.calls = []

    def list_tags(self, host, repository):
        self.calls.append(('list_tags', host, repository))
        if self.error:
            raise self.error
        return [t if isinstance(t, TagDescriptor) else TagDescriptor(name=t)
                for t in self.repositories.get(repository, [])]

    def get_manifest(self, host, repository, reference):
        self.calls.append(('get_manifest', host, repository, reference))
        return TagDescriptor(name=reference, digest=self.manifests.get(reference))


def test_newer_tag_available():
    client = MemoryClient({'jetstack/example': ['v1.0.0', 'v1.0.1']})

    result = resolve_version(parse_image('registry.local/jetstack/example:v1.0.0'), client)

    assert result == Result('v1.0.0', 'v1.0.1', False, 'registry.local/jetstack/example')
    assert result.to_dict() == {
        'CurrentVersion': 'v1.0.0',
        'LatestVersion': 'v1.0.1',
        'IsLatest': False,
        'ImageURL': 'registry.local/jetstack/example',
    }


def test_current_is_latest():
    client = MemoryClient({'app': ['1.9.0', '1.10.0', 'latest', '1.2.0']})

    result = resolve_version(parse_image('registry.local/app:1.10.0'), client)

    assert result.latest_version == '1.10.0'
    assert result.is_latest is True


def test_ordering_is_semantic_not_lexical():
    tags = [TagDescriptor(name=n) for n in ['v1.9.0', 'v1.10.0', 'v1.2.0', 'nightly']]

    assert latest_tag(tags).name == 'v1.10.0'


def test_release_beats_prerelease():
    tags = [TagDescriptor(name=n) for n in ['2.0.0-rc.1', '2.0.0', '1.9.9']]

    assert latest_tag(tags).name == '2.0.0'


def test_equal_versions_first_listed_wins():
    tags = [TagDescriptor(name=n) for n in ['1.0.0', 'v1.0.0']]

    assert latest_tag(tags).name == '1.0.0'


def test_unparsable_current_reported_verbatim():
    client = MemoryClient({'app': ['v1.0.0', 'v1.1.0', 'main']})

    result = resolve_version(parse_image('registry.local/app:main'), client)

    assert result.current_version == 'main'
    assert result.latest_version == 'v1.1.0'
    assert result.is_latest is False


def test_no_parsable_tags_cannot_determine():
    client = MemoryClient({'app': ['latest', 'main', 'stable']})

    result = resolve_version(parse_image('registry.local/app:latest'), client)

    assert result == Result('latest', '', False, 'registry.local/app')


def test_no_tags_found():
    client = MemoryClient({'app': []})

    with pytest.raises(NoTagsFound):
        resolve_version(parse_image('registry.local/app:1.0.0'), client)


def test_registry_error_wrapped_as_tag_list_failed():
    client = MemoryClient(error=AuthenticationFailed('denied', 'registry.local', 'app'))

    with pytest.raises(TagListFailed) as exc_info:
        resolve_version(parse_image('registry.local/app:1.0.0'), client)

    assert isinstance(exc_info.value.__cause__, AuthenticationFailed)
    assert 'AuthenticationFailed' in str(exc_info.value)


def test_digest_matches_latest_from_tag_list():
    client = MemoryClient({'app': [
        TagDescriptor(name='1.0.0', digest=DIGEST_B),
        TagDescriptor(name='1.1.0', digest=DIGEST_A),
    ]})

    result = resolve_version(parse_image('registry.local/app@' + DIGEST_A), client)

    assert result == Result(DIGEST_A, '1.1.0', True, 'registry.local/app')
    assert not [c for c in client.calls if c[0] == 'get_manifest']


def test_digest_fetches_manifest_when_tag_list_has_no_digests():
    client = MemoryClient({'app': ['1.0.0', '1.1.0']}, manifests={'1.1.0': DIGEST_B})

    result = VersionResolver(client).resolve(parse_image('registry.local/app:1.0.0@' + DIGEST_A))

    assert result.current_version == '1.0.0'
    assert result.latest_version == '1.1.0'
    assert result.is_latest is False
    assert ('get_manifest', 'registry.local', 'app', '1.1.0') in client.calls


@pytest.mark.parametrize('tag,expected', [
    ('v1.0.0', (1, 0, 0)),
    ('1.2', (1, 2, 0)),
    ('V3', (3, 0, 0)),
    ('1.0.0-alpine', (1, 0, 0)),
    ('latest', None),
    ('sha-abc123', None),
    ('', None),
    (None, None),
    (2, None),
])
def test_parse_version(tag, expected):
    version = parse_version(tag)

    if expected is None:
        assert version is None
    else:
        assert (version.major, version.minor, version.patch) == expected
