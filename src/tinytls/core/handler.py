"""
=============================================================================
CONNECTION HANDLER
=============================================================================

Everything that happens to one client between accept() and close().

=============================================================================
PER-CONNECTION FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   1. TLS?  ── yes ──► handshake ── fail ──────────────────┐         │
    │      │                   │                                 │         │
    │      no                  ok                                │         │
    │      ▼                   ▼                                 │         │
    │   2. read ONE buffer (max 4095 bytes) ── empty / fail ─────┤         │
    │      │                                                     │         │
    │      ▼                                                     │         │
    │   3. parse "METHOD TARGET" from the first line             │         │
    │      │   (never fails; missing tokens are "")              │         │
    │      ▼                                                     │         │
    │   4. build 200 OK page, sendall() ── fail ─────────────────┤         │
    │      │                                                     │         │
    │      ▼                                                     ▼         │
    │   5. TEARDOWN (finally): end TLS session, close socket               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Nothing that goes wrong here may reach the accept loop. Handshake and
read/write failures are expected and logged as warnings; anything else
is a bug, logged with its traceback, and the next client is still
served.

=============================================================================
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from ..config import ServerConfig
from ..errors import HandshakeFailed
from ..http.request import RequestLine, parse_request_line
from ..http.response import build_http_response
from ..security import SecurityContext
from .connection import Connection


logger = logging.getLogger(__name__)
access_logger = logging.getLogger("tinytls.access")


class ConnectionHandler:
    """
    Serves exactly one request per connection.

    Usage:
        handler = ConnectionHandler(config, security)
        handler.handle(conn)      # always closes conn
    """

    def __init__(self, config: ServerConfig, security: Optional[SecurityContext] = None):
        """
        Args:
            config: Server configuration.
            security: Loaded SecurityContext. Required when
                config.tls_enabled is True, ignored otherwise.
        """
        if config.tls_enabled and security is None:
            raise ValueError("TLS is enabled but no SecurityContext was given")

        self.config = config
        self.security = security if config.tls_enabled else None

    def __call__(self, conn: Connection) -> None:
        self.handle(conn)

    def handle(self, conn: Connection) -> None:
        """Process one connection and tear it down, whatever happens."""
        start_time = time.time()
        try:
            self._serve(conn, start_time)
        except Exception as e:
            logger.exception(f"[{conn.id}] Connection error: {e}")
        finally:
            conn.close()

    def _serve(self, conn: Connection, start_time: float) -> None:
        # ─────────────────────────────────────────────────────────────────
        # STEP 1: TLS handshake (secure mode only)
        # ─────────────────────────────────────────────────────────────────
        if self.security is not None:
            try:
                conn.start_tls(self.security)
            except HandshakeFailed as e:
                logger.warning(f"[{conn.id}] {conn.client_ip}:{conn.client_port} {e}")
                return

        # ─────────────────────────────────────────────────────────────────
        # STEP 2: one bounded read
        # ─────────────────────────────────────────────────────────────────
        raw_request = conn.read_request(self.config.max_request_bytes)
        if raw_request is None:
            return

        logger.debug(f"[{conn.id}] Received {len(raw_request)} bytes: {raw_request[:80]!r}")

        # ─────────────────────────────────────────────────────────────────
        # STEP 3: parse the request line
        # ─────────────────────────────────────────────────────────────────
        request_line = parse_request_line(raw_request)
        if not request_line.is_complete:
            logger.debug(f"[{conn.id}] Incomplete request line, answering anyway: {request_line}")

        # ─────────────────────────────────────────────────────────────────
        # STEP 4: respond over whichever channel is active
        # ─────────────────────────────────────────────────────────────────
        response = build_http_response(request_line, self.config.tls_enabled)
        if not conn.send_response(response.to_bytes()):
            return

        self._log_access(conn, request_line, int(response.headers["Content-Length"]), start_time)

    def _log_access(
        self,
        conn: Connection,
        request_line: RequestLine,
        content_length: int,
        start_time: float,
    ) -> None:
        duration_ms = (time.time() - start_time) * 1000
        timestamp = datetime.now(timezone.utc).strftime("%d/%b/%Y:%H:%M:%S +0000")
        access_logger.info(
            f'{conn.client_ip} - - [{timestamp}] '
            f'"{request_line.method} {request_line.target}" 200 '
            f'{content_length} {duration_ms:.2f}ms'
        )
