import pytest

from versionchecker.errors import InvalidImageReference
from versionchecker.image import DOCKER_HUB_HOST, parse_image

DIGEST = 'sha256:' + 'a' * 64


@pytest.mark.parametrize('image,host,repository,tag,digest', [
    ('nginx', DOCKER_HUB_HOST, 'nginx', 'latest', None),
    ('nginx:1.25', DOCKER_HUB_HOST, 'nginx', '1.25', None),
    ('jetstack/cert-manager-controller:v1.14.0', DOCKER_HUB_HOST, 'jetstack/cert-manager-controller', 'v1.14.0', None),
    ('docker.io/library/nginx', 'docker.io', 'library/nginx', 'latest', None),
    ('quay.io/jetstack/cert-manager-webhook:v1.0.0', 'quay.io', 'jetstack/cert-manager-webhook', 'v1.0.0', None),
    ('registry.example.com/ns/repo:tag', 'registry.example.com', 'ns/repo', 'tag', None),
    ('localhost:5000/team/app:2.0', 'localhost:5000', 'team/app', '2.0', None),
    ('localhost/app', 'localhost', 'app', 'latest', None),
    ('127.0.0.1:8080/jetstack/example:v1.0.0', '127.0.0.1:8080', 'jetstack/example', 'v1.0.0', None),
    ('repo@' + DIGEST, DOCKER_HUB_HOST, 'repo', None, DIGEST),
    ('gcr.io/proj/app:v2@' + DIGEST, 'gcr.io', 'proj/app', 'v2', DIGEST),
])
def test_parse_image(image, host, repository, tag, digest):
    ref = parse_image(image)

    assert ref.host == host
    assert ref.repository == repository
    assert ref.tag == tag
    assert ref.digest == digest


@pytest.mark.parametrize('image', [
    '',
    '   ',
    'repo@sha256:abc@sha256:def',
    'repo@notadigest',
    'registry.example.com/',
    'Upper/Case:tag',
    'repo:bad tag',
])
def test_parse_image_rejects_malformed(image):
    with pytest.raises(InvalidImageReference):
        parse_image(image)


@pytest.mark.parametrize('image', [
    'nginx:1.25',
    'localhost:5000/team/app:2.0',
    'registry.example.com:443/ns/repo@' + DIGEST,
    'gcr.io/proj/app:v2@' + DIGEST,
    '127.0.0.1:8080/jetstack/example',
])
def test_image_url_has_no_tag_or_digest(image):
    ref = parse_image(image)

    assert '@' not in ref.url
    assert ':' not in ref.url.split('/', 1)[1]
    if ref.tag:
        assert not ref.url.endswith(':' + ref.tag)


def test_digest_suppresses_default_tag():
    ref = parse_image('repo@' + DIGEST)

    assert ref.uses_digest
    assert ref.tag is None
    assert str(ref) == f"docker.io/repo@{DIGEST}"
