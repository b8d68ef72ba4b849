"""
=============================================================================
SECURE SESSION
=============================================================================

One TLS session on top of one accepted TCP socket.

=============================================================================
SESSION STATE MACHINE
=============================================================================

    UNESTABLISHED ──handshake()──► HANDSHAKING ──ok──► ESTABLISHED
                                        │                   │
                                        │ fail              │ end()
                                        ▼                   ▼
                                      CLOSED ◄──────────────┘

No transition goes backwards, and CLOSED is terminal. A failed
handshake goes straight to CLOSED: there is nothing to shut down, the
caller only has to close the socket.

=============================================================================
READ / WRITE
=============================================================================

read() and write() have the same shape as socket.recv() / sendall() so
the connection code does not care which one it is talking to:

    read(4095)   → 0..4095 plaintext bytes, b"" when the peer closed
    write(data)  → len(data); sendall() retries short writes internally

=============================================================================
CLOSE NOTIFY
=============================================================================

end() sends the TLS close_notify alert (SSLSocket.unwrap()). OpenSSL
then waits for the peer's own close_notify. Clients usually just drop
the TCP connection instead, so that wait is bounded by a short timeout
and any error is logged at DEBUG and ignored.

=============================================================================
"""

import logging
import ssl
from enum import Enum
from typing import Optional, Tuple

from ..errors import HandshakeFailed


logger = logging.getLogger(__name__)

CLOSE_NOTIFY_TIMEOUT = 0.5


class SessionState(Enum):
    UNESTABLISHED = "unestablished"
    HANDSHAKING = "handshaking"
    ESTABLISHED = "established"
    CLOSED = "closed"


class SecureSession:
    """
    Server side of one TLS session.

    Created by SecurityContext.begin_session(). The session owns the
    wrapped socket's TLS state; the Connection still owns (and closes)
    the socket itself.
    """

    def __init__(
        self,
        tls_socket: ssl.SSLSocket,
        peer: Optional[Tuple[str, int]] = None,
        close_timeout: float = CLOSE_NOTIFY_TIMEOUT,
    ):
        self._socket = tls_socket
        self.peer = peer
        self.close_timeout = close_timeout
        self.state = SessionState.UNESTABLISHED

    @property
    def socket(self) -> ssl.SSLSocket:
        return self._socket

    @property
    def is_established(self) -> bool:
        return self.state is SessionState.ESTABLISHED

    @property
    def cipher(self) -> Optional[str]:
        info = self._socket.cipher() if self.is_established else None
        return info[0] if info else None

    @property
    def protocol_version(self) -> Optional[str]:
        return self._socket.version() if self.is_established else None

    @property
    def peer_certificate(self) -> Optional[dict]:
        """The verified client certificate, as returned by getpeercert()."""
        if not self.is_established:
            return None
        return self._socket.getpeercert() or None

    @property
    def peer_common_name(self) -> Optional[str]:
        cert = self.peer_certificate
        if not cert:
            return None
        for rdn in cert.get("subject", ()):
            for key, value in rdn:
                if key == "commonName":
                    return value
        return None

    def handshake(self) -> None:
        """
        Run the server-side TLS handshake (blocking).

        Raises:
            HandshakeFailed: Not TLS at all, no client certificate, an
                untrusted client certificate, a timeout, or the peer
                hanging up mid-handshake.
        """
        if self.state is not SessionState.UNESTABLISHED:
            raise RuntimeError(f"Cannot handshake in state {self.state.value}")

        self.state = SessionState.HANDSHAKING
        try:
            self._socket.do_handshake()
        except (ssl.SSLError, OSError) as exc:
            # socket.timeout and ConnectionResetError are OSErrors too
            self.state = SessionState.CLOSED
            raise HandshakeFailed(f"TLS handshake failed: {exc}", peer=self.peer) from exc

        self.state = SessionState.ESTABLISHED

    def read(self, max_bytes: int) -> bytes:
        """Decrypt and return up to max_bytes. b"" means the peer closed."""
        self._require_established("read")
        return self._socket.recv(max_bytes)

    def write(self, data: bytes) -> int:
        """Encrypt and send all of data. Returns the number of bytes sent."""
        self._require_established("write")
        self._socket.sendall(data)
        return len(data)

    def end(self) -> None:
        """
        Send close_notify and mark the session CLOSED.

        Safe to call more than once and after a failed read or write.
        Never raises for network errors.
        """
        if self.state is SessionState.CLOSED:
            return

        was_established = self.state is SessionState.ESTABLISHED
        self.state = SessionState.CLOSED

        if not was_established:
            return

        try:
            self._socket.settimeout(self.close_timeout)
            self._socket.unwrap()
        except (ssl.SSLError, OSError) as exc:
            logger.debug(f"close_notify to {self.peer} not completed: {exc}")

    def _require_established(self, operation: str) -> None:
        if self.state is not SessionState.ESTABLISHED:
            raise RuntimeError(f"Cannot {operation} in state {self.state.value}")
