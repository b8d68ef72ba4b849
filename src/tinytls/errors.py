"""
=============================================================================
SERVER ERRORS
=============================================================================

Every failure the server knows how to name lives here.

=============================================================================
FATAL VS RECOVERABLE
=============================================================================

    ┌──────────────────────┬────────────────────────────┬──────────────┐
    │  Exception           │  Where                     │  Effect      │
    ├──────────────────────┼────────────────────────────┼──────────────┤
    │  IdentityLoadFailed  │  startup (cert + key)      │  exit 1      │
    │  TrustRootLoadFailed │  startup (CA file)         │  exit 1      │
    │  BindFailed          │  startup (socket / bind)   │  exit 1      │
    │  ListenFailed        │  startup (listen)          │  exit 1      │
    │  AcceptFailed        │  accept loop               │  exit 1      │
    │  HandshakeFailed     │  one connection            │  drop conn   │
    └──────────────────────┴────────────────────────────┴──────────────┘

Read and write failures are NOT exceptions at the handler level. The
Connection reports them as None / False, logs a warning, and the handler
moves straight to teardown.

The original OSError / ssl.SSLError is always chained as __cause__, so a
traceback shows both what we were doing and what the OS said.

=============================================================================
"""

from typing import Optional, Tuple


class ServerError(Exception):
    """Base class for all tinytls errors."""


class StartupError(ServerError):
    """
    A failure before the server starts listening.

    The process must not serve with a half-configured listener or
    security context, so these always terminate the process.
    """


class IdentityLoadFailed(StartupError):
    """Certificate or private key missing, malformed, or not a matching pair."""

    def __init__(self, message: str, cert_path: str, key_path: str):
        super().__init__(message)
        self.cert_path = cert_path
        self.key_path = key_path


class TrustRootLoadFailed(StartupError):
    """CA file missing or malformed."""

    def __init__(self, message: str, ca_path: str):
        super().__init__(message)
        self.ca_path = ca_path


class BindFailed(StartupError):
    """Socket creation or bind() failed (port in use, permission denied, ...)."""

    def __init__(self, message: str, address: Tuple[str, int]):
        super().__init__(message)
        self.address = address


class ListenFailed(StartupError):
    """listen() failed on an already bound socket."""

    def __init__(self, message: str, address: Tuple[str, int]):
        super().__init__(message)
        self.address = address


class AcceptFailed(ServerError):
    """
    accept() failed on the listening socket.

    A broken listening socket cannot heal itself, so the accept loop
    does not retry: the error propagates and the process exits.
    """


class HandshakeFailed(ServerError):
    """
    The TLS handshake with one client failed.

    Recoverable: the connection is torn down and the server goes back
    to accept().
    """

    def __init__(self, message: str, peer: Optional[Tuple[str, int]] = None):
        super().__init__(message)
        self.peer = peer
