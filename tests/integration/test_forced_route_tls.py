"""
Integration test: the real forced-route session stack against a loopback TLS
server holding a self-signed certificate for the logical host.
"""

import ssl
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

from proxydiff.api.dual_fetcher import create_fetcher
from proxydiff.config.settings import Settings

DATA_DIR = Path(__file__).resolve().parent.parent / "data"
REDIRECT_TARGET = "https://www.epfl.ch/_vti_bin/"


@pytest.fixture
def tls_server():
    """Threaded HTTPS server that answers every GET with a 301 and records what it saw."""
    seen = {"sni": [], "requests": []}

    class Handler(BaseHTTPRequestHandler):
        def do_GET(self):
            seen["requests"].append((self.path, dict(self.headers)))
            body = b"moved"
            self.send_response(301)
            self.send_header("Location", REDIRECT_TARGET)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format, *args):
            pass

    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(DATA_DIR / "www.epfl.ch.crt", DATA_DIR / "www.epfl.ch.key")
    context.sni_callback = lambda sock, server_name, ctx: seen["sni"].append(server_name)

    server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    server.socket = context.wrap_socket(server.socket, server_side=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    yield server.server_address[1], seen

    server.shutdown()
    server.server_close()
    thread.join(timeout=5)


def test_fetch_presents_logical_host_to_backend_ip(tls_server):
    port, seen = tls_server
    settings = Settings(
        old_ip="127.0.0.1",
        new_ip="127.0.0.1",
        port=port,
        scenario_timeout=5.0,
        connect_timeout=2.0,
    )

    old, new = create_fetcher(settings).fetch_path("/_vti_bin")

    assert seen["sni"] == ["www.epfl.ch", "www.epfl.ch"]
    assert len(seen["requests"]) == 2
    for path, headers in seen["requests"]:
        assert path == "/_vti_bin"
        assert headers["Host"] == "www.epfl.ch"
        assert headers["Cookie"] == settings.session_cookie

    for response in (old, new):
        assert response.status_code == 301
        assert response.location == REDIRECT_TARGET
        assert response.body == "moved"
    assert (old.backend, new.backend) == ("old", "new")
