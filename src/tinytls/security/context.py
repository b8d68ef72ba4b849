"""
=============================================================================
SECURITY CONTEXT: IDENTITY AND TRUST
=============================================================================

Loads the server's credentials once at startup and hands out TLS
sessions for accepted sockets.

=============================================================================
THE THREE FILES
=============================================================================

    ┌──────────────┬──────────────────────────────────────────────────────┐
    │  server.crt  │  IDENTITY: our certificate, shown to every client    │
    │  server.key  │  IDENTITY: private key that MUST match server.crt    │
    │  ca.crt      │  TRUST ROOT: CA that must have signed the client's   │
    │              │  certificate                                         │
    └──────────────┴──────────────────────────────────────────────────────┘

This is MUTUAL TLS. The client verifies us (usual HTTPS), and we verify
the client: a client without a certificate signed by ca.crt never gets
past the handshake.

=============================================================================
STARTUP FAILURES ARE FATAL
=============================================================================

    load_identity()   ── missing / malformed / key mismatch ──► IdentityLoadFailed
    load_trust_root() ── missing / malformed ─────────────────► TrustRootLoadFailed

Both are raised before the listening socket exists. A server that
"mostly" loaded its credentials would fail every single handshake, which
is worse than not starting.

=============================================================================
SHARING
=============================================================================

The SecurityContext is built once and never mutated afterwards. Every
connection reads from it; none writes to it. ssl.SSLContext is safe to
share this way.

=============================================================================
"""

import logging
import ssl
import socket
from dataclasses import dataclass
from typing import Optional, Tuple

from ..config import ServerConfig
from ..errors import IdentityLoadFailed, TrustRootLoadFailed, HandshakeFailed
from .session import SecureSession


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Certificate and private key proving who the server is."""

    cert_path: str
    key_path: str


@dataclass(frozen=True)
class TrustRoot:
    """CA certificate used to validate client certificates."""

    ca_path: str


@dataclass(frozen=True)
class VerifyPolicy:
    """
    How client certificates are checked.

    require_peer_certificate=True maps to ssl.CERT_REQUIRED, which is
    OpenSSL's VERIFY_PEER | VERIFY_FAIL_IF_NO_PEER_CERT: a missing or
    invalid client certificate fails the handshake.
    """

    require_peer_certificate: bool = True

    @property
    def verify_mode(self) -> ssl.VerifyMode:
        if self.require_peer_certificate:
            return ssl.CERT_REQUIRED
        return ssl.CERT_OPTIONAL


REQUIRE_PEER_CERTIFICATE = VerifyPolicy(require_peer_certificate=True)


def create_server_context() -> ssl.SSLContext:
    """
    Create an empty server-side TLS context.

    PROTOCOL_TLS_SERVER negotiates the highest version both sides
    support.
    """
    return ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)


def load_identity(context: ssl.SSLContext, cert_path: str, key_path: str) -> Identity:
    """
    Load the server certificate and private key into context.

    Raises:
        IdentityLoadFailed: A file is missing or malformed, or the key
            does not belong to the certificate.
    """
    try:
        context.load_cert_chain(certfile=cert_path, keyfile=key_path)
    except (ssl.SSLError, OSError) as exc:
        raise IdentityLoadFailed(
            f"Cannot load identity from {cert_path} / {key_path}: {exc}",
            cert_path=cert_path,
            key_path=key_path,
        ) from exc

    logger.debug(f"Loaded identity {cert_path} / {key_path}")
    return Identity(cert_path=cert_path, key_path=key_path)


def load_trust_root(context: ssl.SSLContext, ca_path: str) -> TrustRoot:
    """
    Load the CA certificate used to verify clients.

    Raises:
        TrustRootLoadFailed: The file is missing or holds no usable
            certificate.
    """
    try:
        context.load_verify_locations(cafile=ca_path)
    except (ssl.SSLError, OSError) as exc:
        raise TrustRootLoadFailed(
            f"Cannot load trust root from {ca_path}: {exc}",
            ca_path=ca_path,
        ) from exc

    logger.debug(f"Loaded trust root {ca_path}")
    return TrustRoot(ca_path=ca_path)


class SecurityContext:
    """
    Loaded credentials plus verification policy.

    Usage:
        security = SecurityContext.from_files("server.crt", "server.key", "ca.crt")

        session = security.begin_session(client_socket, address)
        session.handshake()        # raises HandshakeFailed
    """

    def __init__(
        self,
        ssl_context: ssl.SSLContext,
        identity: Identity,
        trust_root: TrustRoot,
        policy: VerifyPolicy = REQUIRE_PEER_CERTIFICATE,
    ):
        self._ssl_context = ssl_context
        self.identity = identity
        self.trust_root = trust_root
        self.policy = policy

    @classmethod
    def from_files(cls, cert_path: str, key_path: str, ca_path: str) -> "SecurityContext":
        """
        Build a context from PEM files.

        Order matters only for error reporting: the identity is checked
        first, then the trust root.
        """
        context = create_server_context()
        identity = load_identity(context, cert_path, key_path)
        trust_root = load_trust_root(context, ca_path)

        policy = REQUIRE_PEER_CERTIFICATE
        context.verify_mode = policy.verify_mode

        logger.info(
            f"TLS enabled: certificate={cert_path}, trust root={ca_path}, "
            f"client certificate required"
        )
        return cls(context, identity, trust_root, policy)

    @classmethod
    def from_config(cls, config: ServerConfig) -> "SecurityContext":
        return cls.from_files(config.cert_file, config.key_file, config.ca_file)

    @property
    def ssl_context(self) -> ssl.SSLContext:
        return self._ssl_context

    def begin_session(
        self,
        raw_socket: socket.socket,
        peer: Optional[Tuple[str, int]] = None,
    ) -> SecureSession:
        """
        Wrap an accepted socket for a server-side TLS session.

        The handshake is NOT performed here; call session.handshake().

        After this call the raw socket object no longer owns its file
        descriptor: the returned session's socket does.

        Raises:
            HandshakeFailed: The socket could not even be wrapped
                (e.g. the peer already reset the connection).
        """
        try:
            tls_socket = self._ssl_context.wrap_socket(
                raw_socket,
                server_side=True,
                do_handshake_on_connect=False,
            )
        except (ssl.SSLError, OSError) as exc:
            raise HandshakeFailed(f"Cannot start TLS session: {exc}", peer=peer) from exc

        return SecureSession(tls_socket, peer=peer)
