"""
pytest configuration and fixtures.
"""

import shutil
import socket
import ssl
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Generator, List, Optional

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tinytls import TinyTLSServer, ServerConfig


# =============================================================================
# SAMPLE REQUESTS
# =============================================================================

@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /x HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with an empty header section."""
    return b"POST /submit HTTP/1.1\r\n\r\n"


# =============================================================================
# FAKE SOCKETS (unit tests)
# =============================================================================

class FakeSocket:
    """
    Stand-in for a connected socket.

    recv() hands out the queued chunks one per call, then b"". Every call
    that matters for teardown is counted.
    """

    def __init__(self, chunks: Optional[List[bytes]] = None, recv_error: Exception = None,
                 send_error: Exception = None, close_error: Exception = None):
        self.chunks = list(chunks or [])
        self.recv_error = recv_error
        self.send_error = send_error
        self.close_error = close_error
        self.sent = b""
        self.recv_sizes: List[int] = []
        self.timeouts: List[Optional[float]] = []
        self.shutdown_calls = 0
        self.close_calls = 0

    def settimeout(self, value):
        self.timeouts.append(value)

    def recv(self, size: int) -> bytes:
        if self.close_calls:
            raise OSError("Bad file descriptor")
        self.recv_sizes.append(size)
        if self.recv_error is not None:
            error, self.recv_error = self.recv_error, None
            raise error
        if self.chunks:
            return self.chunks.pop(0)[:size]
        return b""

    def sendall(self, data: bytes):
        if self.send_error is not None:
            raise self.send_error
        self.sent += data

    def shutdown(self, how):
        self.shutdown_calls += 1

    def close(self):
        self.close_calls += 1
        if self.close_error is not None:
            raise self.close_error


@pytest.fixture
def fake_socket_factory():
    return FakeSocket


# =============================================================================
# TLS CREDENTIALS
# =============================================================================

OPENSSL_CONFIG = """\
[req]
distinguished_name = dn
prompt = no

[dn]
CN = unused

[v3_ca]
basicConstraints = critical, CA:TRUE
keyUsage = critical, keyCertSign, cRLSign
subjectKeyIdentifier = hash

[v3_leaf]
basicConstraints = CA:FALSE
keyUsage = critical, digitalSignature, keyEncipherment
extendedKeyUsage = serverAuth, clientAuth
subjectAltName = DNS:localhost, IP:127.0.0.1
subjectKeyIdentifier = hash
authorityKeyIdentifier = keyid
"""


@dataclass
class Credentials:
    """Paths of a generated test PKI."""

    ca_cert: str
    ca_key: str
    server_cert: str
    server_key: str
    client_cert: str
    client_key: str
    other_ca_cert: str
    other_client_cert: str
    other_client_key: str


def _openssl(*args: str, cwd: Path) -> None:
    subprocess.run(
        ["openssl", *args],
        cwd=str(cwd),
        check=True,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )


def _make_ca(tmp: Path, cnf: Path, name: str) -> None:
    _openssl(
        "req", "-x509", "-config", str(cnf), "-extensions", "v3_ca",
        "-newkey", "rsa:2048", "-nodes", "-sha256", "-days", "2",
        "-subj", f"/CN={name}",
        "-keyout", f"{name}.key", "-out", f"{name}.crt",
        cwd=tmp,
    )


def _make_leaf(tmp: Path, cnf: Path, name: str, ca: str, serial: int) -> None:
    _openssl(
        "req", "-new", "-config", str(cnf),
        "-newkey", "rsa:2048", "-nodes", "-sha256",
        "-subj", f"/CN={name}",
        "-keyout", f"{name}.key", "-out", f"{name}.csr",
        cwd=tmp,
    )
    _openssl(
        "x509", "-req", "-in", f"{name}.csr",
        "-CA", f"{ca}.crt", "-CAkey", f"{ca}.key", "-set_serial", str(serial),
        "-sha256", "-days", "2",
        "-extfile", str(cnf), "-extensions", "v3_leaf",
        "-out", f"{name}.crt",
        cwd=tmp,
    )


@pytest.fixture(scope="session")
def credentials(tmp_path_factory) -> Credentials:
    """
    A throwaway PKI made with the openssl CLI:

        test-ca ──signs──► localhost (server), client
        other-ca ─signs──► stranger (client the server must reject)
    """
    if shutil.which("openssl") is None:
        pytest.skip("openssl command line tool not available")

    tmp = tmp_path_factory.mktemp("pki")
    cnf = tmp / "openssl.cnf"
    cnf.write_text(OPENSSL_CONFIG)

    _make_ca(tmp, cnf, "test-ca")
    _make_leaf(tmp, cnf, "localhost", "test-ca", serial=2)
    _make_leaf(tmp, cnf, "client", "test-ca", serial=3)
    _make_ca(tmp, cnf, "other-ca")
    _make_leaf(tmp, cnf, "stranger", "other-ca", serial=4)

    return Credentials(
        ca_cert=str(tmp / "test-ca.crt"),
        ca_key=str(tmp / "test-ca.key"),
        server_cert=str(tmp / "localhost.crt"),
        server_key=str(tmp / "localhost.key"),
        client_cert=str(tmp / "client.crt"),
        client_key=str(tmp / "client.key"),
        other_ca_cert=str(tmp / "other-ca.crt"),
        other_client_cert=str(tmp / "stranger.crt"),
        other_client_key=str(tmp / "stranger.key"),
    )


def client_context(credentials: Credentials, cert: Optional[str] = None,
                   key: Optional[str] = None) -> ssl.SSLContext:
    """Client-side context that trusts the test CA, optionally with a client cert."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.load_verify_locations(cafile=credentials.ca_cert)
    if cert:
        context.load_cert_chain(certfile=cert, keyfile=key)
    return context


# =============================================================================
# RUNNING SERVER
# =============================================================================

class ServerRunner:
    """Runs a TinyTLSServer's accept loop in a background thread."""

    def __init__(self, server: TinyTLSServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None
        self.error: Optional[BaseException] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self) -> "ServerRunner":
        self.server.start()
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()
        return self

    def _serve(self):
        try:
            self.server.serve_forever()
        except BaseException as e:  # surfaced through .error
            self.error = e

    def connect(self, timeout: float = 5.0) -> socket.socket:
        return socket.create_connection(("127.0.0.1", self.port), timeout=timeout)

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


def recv_all(sock: socket.socket) -> bytes:
    """Read until the server closes the connection."""
    data = b""
    while True:
        try:
            chunk = sock.recv(4096)
        except (ssl.SSLError, ConnectionResetError):
            break
        if not chunk:
            break
        data += chunk
    return data


def split_response(data: bytes):
    """Split a raw response into (status line, headers dict, body)."""
    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip()] = value.strip()
    return lines[0], headers, body


@pytest.fixture
def plain_config() -> ServerConfig:
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        tls_enabled=False,
        timeout=5.0,
        log_level="DEBUG",
    )


@pytest.fixture
def plain_server(plain_config: ServerConfig) -> Generator[ServerRunner, None, None]:
    runner = ServerRunner(TinyTLSServer(plain_config)).start()
    yield runner
    runner.stop()


@pytest.fixture
def tls_config(credentials: Credentials) -> ServerConfig:
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        tls_enabled=True,
        cert_file=credentials.server_cert,
        key_file=credentials.server_key,
        ca_file=credentials.ca_cert,
        timeout=5.0,
        log_level="DEBUG",
    )


@pytest.fixture
def tls_server(tls_config: ServerConfig) -> Generator[ServerRunner, None, None]:
    runner = ServerRunner(TinyTLSServer(tls_config)).start()
    yield runner
    runner.stop()
