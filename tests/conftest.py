"""
Shared fixtures: a local HTTP server standing in for registries and the
Kubernetes API.
"""

import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from types import SimpleNamespace
from urllib.parse import parse_qs, urlparse

import pytest

FIXTURES = Path(__file__).parent / 'fixtures'


class FakeServer:
    """
    Routes requests by (method, path) to canned responses

    A route is either a static (status, headers, body) triple or a callable
    taking the request and returning one. Dict and list bodies are sent as
    JSON. Unknown paths answer 404.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []
        self._lock = threading.Lock()
        self.httpd = ThreadingHTTPServer(('127.0.0.1', 0), _Handler)
        self.httpd.fake = self
        self.thread = threading.Thread(target=self.httpd.serve_forever, daemon=True)

    @property
    def host(self) -> str:
        return f"127.0.0.1:{self.httpd.server_address[1]}"

    @property
    def url(self) -> str:
        return f"http://{self.host}"

    def route(self, path, body=None, status=200, headers=None, method='GET', handler=None):
        self.routes[(method, path)] = handler or (status, headers or {}, body)

    def requests_to(self, path, method='GET'):
        return [r for r in self.requests if r.path == path and r.method == method]

    def handle(self, request):
        with self._lock:
            self.requests.append(request)

        route = self.routes.get((request.method, request.path))
        if route is None:
            return 404, {}, {'errors': [{'code': 'NAME_UNKNOWN', 'message': request.path}]}
        if callable(route):
            return route(request)
        return route


class _Handler(BaseHTTPRequestHandler):

    def _dispatch(self, method):
        parsed = urlparse(self.path)
        length = int(self.headers.get('Content-Length') or 0)
        request = SimpleNamespace(
            method=method,
            path=parsed.path,
            query={k: v[0] for k, v in parse_qs(parsed.query).items()},
            headers={key.title(): value for key, value in self.headers.items()},
            body=self.rfile.read(length).decode() if length else '',
        )

        status, headers, body = self.server.fake.handle(request)
        if isinstance(body, (dict, list)):
            payload = json.dumps(body).encode()
            headers = {'Content-Type': 'application/json', **headers}
        else:
            payload = (body or '').encode()

        self.send_response(status)
        for key, value in headers.items():
            self.send_header(key, value)
        self.send_header('Content-Length', str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def do_GET(self):
        self._dispatch('GET')

    def do_POST(self):
        self._dispatch('POST')

    def log_message(self, format, *args):
        pass


@pytest.fixture
def server():
    fake = FakeServer()
    fake.thread.start()
    yield fake
    fake.httpd.shutdown()
    fake.httpd.server_close()


@pytest.fixture
def secret_file():
    return str(FIXTURES / 'example_secret')


def write_kubeconfig(path: Path, server_url: str) -> Path:
    path.write_text(f"""
apiVersion: v1
kind: Config
clusters:
- cluster:
    server: {server_url}
  name: example
contexts:
- context:
    cluster: example
    namespace: default
    user: test
  name: test
current-context: test
users:
- name: test
  user:
    token: test-token
""")
    return path


@pytest.fixture
def kubeconfig(tmp_path, server):
    return write_kubeconfig(tmp_path / 'kubeconfig', server.url)


def pod(name, namespace, *images, init_images=()):
    """Minimal pod document with one container per image"""
    spec = {'containers': [{'name': f"c{i}", 'image': image} for i, image in enumerate(images)]}
    if init_images:
        spec['initContainers'] = [{'name': f"init{i}", 'image': image} for i, image in enumerate(init_images)]
    return {
        'kind': 'Pod',
        'apiVersion': 'v1',
        'metadata': {'name': name, 'namespace': namespace},
        'spec': spec,
    }
