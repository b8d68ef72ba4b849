"""
End-to-end tests against a running server in mutual-TLS mode.
"""

import os
import ssl

import pytest

from tinytls import TinyTLSServer, IdentityLoadFailed, TrustRootLoadFailed

from conftest import client_context, recv_all, split_response


REQUEST = b"GET /secure HTTP/1.1\r\nHost: localhost\r\n\r\n"


def tls_exchange(runner, context: ssl.SSLContext, request: bytes = REQUEST) -> bytes:
    """
    Send one request over TLS and return whatever comes back.

    A refused handshake surfaces on whichever call runs into the alert
    first (TLS 1.3 reports a missing client certificate after the client
    thinks it is done), so any failure just means no response.
    """
    raw = runner.connect()
    try:
        with context.wrap_socket(raw, server_hostname="localhost") as tls:
            tls.sendall(request)
            return recv_all(tls)
    except (ssl.SSLError, OSError):
        return b""
    finally:
        raw.close()


@pytest.fixture
def trusted_client(credentials) -> ssl.SSLContext:
    return client_context(credentials, credentials.client_cert, credentials.client_key)


class TestMutualTLS:

    def test_trusted_client_gets_response(self, tls_server, trusted_client):
        status, headers, body = split_response(tls_exchange(tls_server, trusted_client))

        assert status == "HTTP/1.1 200 OK"
        assert int(headers["Content-Length"]) == len(body)
        assert b"Method: GET" in body
        assert b"URL: /secure" in body
        assert b"HTTPS" in body

    def test_client_without_certificate_is_refused(self, tls_server, credentials, trusted_client):
        data = tls_exchange(tls_server, client_context(credentials))

        assert b"HTTP/" not in data
        assert tls_exchange(tls_server, trusted_client).startswith(b"HTTP/1.1 200 OK")

    def test_untrusted_client_certificate_is_refused(self, tls_server, credentials, trusted_client):
        stranger = client_context(
            credentials, credentials.other_client_cert, credentials.other_client_key
        )

        assert b"HTTP/" not in tls_exchange(tls_server, stranger)
        assert tls_exchange(tls_server, trusted_client).startswith(b"HTTP/1.1 200 OK")

    def test_plain_text_client_gets_nothing(self, tls_server, trusted_client):
        with tls_server.connect() as sock:
            sock.sendall(b"GET / HTTP/1.1\r\n\r\n")
            data = recv_all(sock)

        assert b"HTTP/" not in data
        assert tls_exchange(tls_server, trusted_client).startswith(b"HTTP/1.1 200 OK")

    def test_client_hangs_up_mid_handshake(self, tls_server, trusted_client):
        with tls_server.connect() as sock:
            sock.sendall(b"\x16\x03\x01")  # start of a ClientHello record

        assert tls_exchange(tls_server, trusted_client).startswith(b"HTTP/1.1 200 OK")

    def test_server_survives_many_failures(self, tls_server, credentials, trusted_client):
        anonymous = client_context(credentials)
        for _ in range(5):
            tls_exchange(tls_server, anonymous)

        assert tls_server.is_alive
        assert tls_server.error is None
        assert tls_exchange(tls_server, trusted_client).startswith(b"HTTP/1.1 200 OK")

    def test_identical_requests_identical_responses(self, tls_server, trusted_client):
        assert tls_exchange(tls_server, trusted_client) == tls_exchange(tls_server, trusted_client)


class TestStartup:

    def test_missing_key_fails_before_binding(self, tls_config, tmp_path):
        server = TinyTLSServer(tls_config.with_overrides(key_file=str(tmp_path / "gone.key")))

        with pytest.raises(IdentityLoadFailed):
            server.start()
        assert not server.is_running

    def test_missing_ca_fails_before_binding(self, tls_config, tmp_path):
        server = TinyTLSServer(tls_config.with_overrides(ca_file=str(tmp_path / "gone.crt")))

        with pytest.raises(TrustRootLoadFailed):
            server.start()
        assert not server.is_running

    def test_security_loaded_once(self, tls_server):
        assert tls_server.server.security is not None
        assert tls_server.server.security.identity.cert_path.endswith("localhost.crt")


@pytest.mark.skipif(not os.path.isdir("/proc/self/fd"), reason="needs /proc/self/fd")
class TestResourceLeaks:

    def test_no_descriptor_growth_with_mixed_clients(self, tls_server, credentials, trusted_client):
        """Established and refused sessions alike are torn down completely."""
        anonymous = client_context(credentials)
        stranger = client_context(
            credentials, credentials.other_client_cert, credentials.other_client_key
        )

        def open_fds() -> int:
            return len(os.listdir("/proc/self/fd"))

        for context in (trusted_client, anonymous, stranger):
            tls_exchange(tls_server, context)
        baseline = open_fds()

        for i in range(60):
            assert tls_exchange(tls_server, trusted_client).startswith(b"HTTP/1.1 200 OK"), i
            assert b"HTTP/" not in tls_exchange(tls_server, anonymous)
            assert b"HTTP/" not in tls_exchange(tls_server, stranger)

        assert open_fds() - baseline <= 2
        assert tls_server.server._scheduler.connections_handled >= 180
