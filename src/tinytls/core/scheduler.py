"""
=============================================================================
CONNECTION SCHEDULING
=============================================================================

Decides WHEN and WHERE a connection handler runs once accept() has
returned a client.

    accept loop ──► scheduler.submit(handler, conn) ──► handler(conn)

The accept loop and the handler never talk to each other directly, so
the "one connection at a time, fully blocking" policy lives in exactly
one place. Swapping in a thread-pool scheduler would change nothing in
ConnectionHandler.

=============================================================================
SERIAL SCHEDULING
=============================================================================

SerialScheduler runs the handler inline, on the accept thread:

    accept ─► handle(conn 1) ─► accept ─► handle(conn 2) ─► ...

Connections are served strictly in acceptance order. While one is being
served no other client is accepted: a slow client stalls everyone
(unless ServerConfig.timeout is set).

=============================================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable

from .connection import Connection


logger = logging.getLogger(__name__)

ConnectionCallback = Callable[[Connection], None]


class ConnectionScheduler(ABC):
    """Policy for running connection handlers."""

    @abstractmethod
    def submit(self, handler: ConnectionCallback, conn: Connection) -> None:
        """
        Arrange for handler(conn) to run.

        The handler owns the connection from this point on and is
        responsible for closing it.
        """

    def shutdown(self) -> None:
        """Stop accepting work. Default: nothing to release."""


class SerialScheduler(ConnectionScheduler):
    """Run each handler to completion before the next accept()."""

    def __init__(self):
        self.connections_handled = 0

    def submit(self, handler: ConnectionCallback, conn: Connection) -> None:
        handler(conn)
        self.connections_handled += 1

    def shutdown(self) -> None:
        logger.debug(f"Serial scheduler handled {self.connections_handled} connections")
