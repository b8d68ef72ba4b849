"""
=============================================================================
TCP LISTENER
=============================================================================

The listening socket: bind once, then hand out accepted client sockets
one at a time.

=============================================================================
SOCKET LIFECYCLE (Server Side)
=============================================================================

    1. socket()    Create a TCP socket
    2. setsockopt  SO_REUSEADDR, so a restarted server can rebind the
                   port immediately instead of waiting out TIME_WAIT
    3. bind()      Claim HOST:PORT            ── failure: BindFailed
    4. listen()    Start the accept queue     ── failure: ListenFailed
    5. accept()    One call, one client       ── failure: AcceptFailed
    6. close()     Release the port

=============================================================================
POLLING ACCEPT
=============================================================================

accept() would block forever, leaving no way to stop the server short
of killing it. The listening socket gets a short timeout instead:

    while running:
        try:
            accept()          # blocks at most POLL_INTERVAL seconds
        except timeout:
            continue          # re-check running, NOT an error

A real accept() error is different: a broken listening socket cannot
recover, so it is raised as AcceptFailed and ends the process.

=============================================================================
"""

import socket
import logging
from typing import Optional, Tuple

from ..errors import BindFailed, ListenFailed, AcceptFailed


logger = logging.getLogger(__name__)

POLL_INTERVAL = 1.0


class AcceptTimeout(Exception):
    """No client arrived within the poll interval. Not an error."""


class Listener:
    """
    Bound and listening TCP socket.

    Usage:
        listener = Listener("0.0.0.0", 8080)
        listener.bind_and_listen()
        client_socket, address = listener.accept()
    """

    def __init__(
        self,
        host: str,
        port: int,
        backlog: int = 1,
        poll_interval: Optional[float] = POLL_INTERVAL,
    ):
        self.host = host
        self.port = port
        self.backlog = backlog
        self.poll_interval = poll_interval
        self._socket: Optional[socket.socket] = None

    @property
    def is_listening(self) -> bool:
        return self._socket is not None

    @property
    def address(self) -> Tuple[str, int]:
        """
        The bound (ip, port). After binding port 0 this is the port the
        OS actually picked.
        """
        if self._socket is not None:
            return self._socket.getsockname()[:2]
        return (self.host, self.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.settimeout(self.poll_interval)
        return sock

    def bind_and_listen(self) -> Tuple[str, int]:
        """
        Create, bind and start listening.

        Returns:
            The bound address.

        Raises:
            BindFailed: Socket creation or bind() failed.
            ListenFailed: listen() failed.
        """
        address = (self.host, self.port)

        try:
            sock = self._create_socket()
        except OSError as e:
            logger.error(f"Unable to create socket: {e}")
            raise BindFailed(f"Unable to create socket: {e}", address) from e

        try:
            sock.bind(address)
        except OSError as e:
            sock.close()
            logger.error(f"Unable to bind to {self.host}:{self.port}: {e}")
            raise BindFailed(f"Unable to bind to {self.host}:{self.port}: {e}", address) from e

        try:
            sock.listen(self.backlog)
        except OSError as e:
            sock.close()
            logger.error(f"Unable to listen on {self.host}:{self.port}: {e}")
            raise ListenFailed(f"Unable to listen on {self.host}:{self.port}: {e}", address) from e

        self._socket = sock
        return self.address

    def accept(self) -> Tuple[socket.socket, Tuple[str, int]]:
        """
        Wait for the next client.

        Returns:
            (client_socket, (ip, port))

        Raises:
            AcceptTimeout: Nobody connected within poll_interval.
            AcceptFailed: The listening socket is broken (or closed).
        """
        if self._socket is None:
            raise AcceptFailed("Listener is not listening")

        try:
            client_socket, client_address = self._socket.accept()
        except socket.timeout:
            raise AcceptTimeout() from None
        except OSError as e:
            raise AcceptFailed(f"Unable to accept: {e}") from e

        logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")
        return client_socket, client_address

    def close(self) -> None:
        if self._socket is None:
            return
        try:
            self._socket.close()
        except OSError:
            pass  # Already closed
        self._socket = None

    def __enter__(self):
        self.bind_and_listen()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
