"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps one accepted client socket: optional TLS, one bounded
read, one write, and a teardown that always runs exactly once.

=============================================================================
ONE READ, NO REASSEMBLY
=============================================================================

TCP is a byte stream, so a single recv() may return only part of what
the client sent. This server deliberately does NOT loop:

    ┌─────────────────────────────────────────────────────────────────┐
    │   buffer = 4096 bytes                                            │
    │   ├── 4095 bytes readable                                        │
    │   └──    1 byte reserved (terminator)                            │
    │                                                                  │
    │   recv(4095) ONCE  →  whatever arrived is "the request"          │
    │                                                                  │
    │   Anything after byte 4095 is never read.                        │
    └─────────────────────────────────────────────────────────────────┘

Only the first line matters (method + target), and it is almost always
in the first segment.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──► HANDSHAKING ──► READING ──► WRITING ──► CLOSING ──► CLOSED
     │           │             │           │           ▲
     └───────────┴─────────────┴───────────┴───────────┘
                     (any failure goes to teardown)

=============================================================================
TEARDOWN
=============================================================================

close() is the single exit for every connection:

    1. session.end()      close_notify, only if a TLS session was established
    2. shutdown(SHUT_WR)  send FIN
    3. drain              read and discard what the client still sends,
                          so unread request bytes don't turn our FIN
                          into an RST that kills the response in flight.
                          Bounded by DRAIN_TIMEOUT in total and by
                          DRAIN_MAX_BYTES: a client trickling bytes
                          cannot hold the (only) server thread.
    4. close()            release the file descriptor

Every step swallows (and logs) its own errors. A second close() call is
a no-op, so the descriptor is released exactly once.

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, TYPE_CHECKING
import uuid

if TYPE_CHECKING:
    from ..security import SecurityContext, SecureSession


logger = logging.getLogger(__name__)

DRAIN_TIMEOUT = 0.5           # whole drain, not per recv()
DRAIN_MAX_BYTES = 64 * 1024


class ConnectionState(Enum):
    """
    Connection lifecycle states, used for logging and for making
    close() idempotent.
    """

    NEW = "new"                  # Just accepted
    HANDSHAKING = "handshaking"  # TLS handshake in progress
    READING = "reading"          # Waiting for the request bytes
    WRITING = "writing"          # Sending the response
    CLOSING = "closing"          # Teardown in progress
    CLOSED = "closed"            # Descriptor released


@dataclass
class Connection:
    """
    Represents one accepted client.

    Attributes:
        socket: The accepted (raw TCP) client socket.
        address: Client's (ip, port) tuple.
        timeout: Socket timeout in seconds, None for fully blocking.
        id: Short unique id used to prefix log lines.
        state: Current ConnectionState.
        session: The TLS session, set only after a successful handshake.
        created_at: Accept timestamp.
    """

    socket: socket.socket
    address: tuple

    timeout: Optional[float] = None

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    session: Optional["SecureSession"] = None
    created_at: float = field(default_factory=time.time)

    # The socket we actually talk through: the raw socket, or the
    # TLS-wrapped one once start_tls() has wrapped it.
    _stream: Optional[socket.socket] = field(default=None, repr=False)

    def __post_init__(self):
        self._stream = self.socket
        self.socket.settimeout(self.timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def is_secure(self) -> bool:
        return self.session is not None

    @property
    def is_closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    @property
    def age(self) -> float:
        """Connection age in seconds."""
        return time.time() - self.created_at

    # =========================================================================
    # TLS
    # =========================================================================

    def start_tls(self, security: "SecurityContext") -> "SecureSession":
        """
        Wrap the socket and run the TLS handshake.

        On failure the wrapped socket is still tracked, so close()
        releases it like any other.

        Raises:
            HandshakeFailed: From SecurityContext.begin_session() or
                SecureSession.handshake().
        """
        self.state = ConnectionState.HANDSHAKING

        session = security.begin_session(self.socket, self.address)
        self._stream = session.socket

        session.handshake()

        self.session = session
        logger.debug(
            f"[{self.id}] TLS established with {self.client_ip}:{self.client_port} "
            f"({session.protocol_version}, {session.cipher}, peer={session.peer_common_name})"
        )
        return session

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self, max_bytes: int) -> Optional[bytes]:
        """
        Read the request with a single receive call.

        Args:
            max_bytes: Upper bound for this read.

        Returns:
            1..max_bytes bytes, or None if the peer closed without sending
            anything or the read failed (timeout, reset, TLS error).
        """
        self.state = ConnectionState.READING

        try:
            if self.session is not None:
                data = self.session.read(max_bytes)
            else:
                data = self._stream.recv(max_bytes)
        except socket.timeout:
            logger.warning(f"[{self.id}] Read timed out")
            return None
        except OSError as e:
            # ConnectionResetError, ssl.SSLError, ... are all OSError
            logger.warning(f"[{self.id}] Read failed: {e}")
            return None

        if not data:
            logger.warning(f"[{self.id}] Client closed without sending a request")
            return None

        return data

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send the whole response.

        sendall() keeps writing until every byte is out, so a short
        write never silently truncates the response.

        Returns:
            True if everything was sent, False if the connection broke.
        """
        self.state = ConnectionState.WRITING

        try:
            if self.session is not None:
                self.session.write(data)
            else:
                self._stream.sendall(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Tear the connection down. Runs at most once; never raises.
        """
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return

        self.state = ConnectionState.CLOSING
        stream = self._stream

        if self.session is not None:
            self.session.end()

        try:
            stream.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Peer already gone

        self._drain(stream)

        try:
            stream.close()
        except OSError as e:
            logger.warning(f"[{self.id}] Close failed: {e}")

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age * 1000:.1f}ms")

    def _drain(self, stream) -> int:
        """
        Discard unread input until EOF, DRAIN_TIMEOUT or DRAIN_MAX_BYTES,
        whichever comes first. Returns the number of bytes discarded.
        """
        deadline = time.monotonic() + DRAIN_TIMEOUT
        drained = 0

        try:
            while drained < DRAIN_MAX_BYTES:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                stream.settimeout(remaining)
                chunk = stream.recv(min(1024, DRAIN_MAX_BYTES - drained))
                if not chunk:
                    break
                drained += len(chunk)
        except OSError:
            pass  # Includes socket.timeout

        if drained:
            logger.debug(f"[{self.id}] Discarded {drained} unread bytes")
        return drained

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
