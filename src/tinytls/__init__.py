"""
=============================================================================
TINYTLS - A Tiny Server With Optional Mutual TLS
=============================================================================

Accepts TCP connections one at a time, optionally runs a TLS handshake
that REQUIRES a client certificate, reads one bounded request, and
answers every request with the same kind of page:

    HTTP/1.1 200 OK
    Content-Type: text/html
    Content-Length: <exact body size>

    <html>... Method: GET ... URL: /x ...</html>

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    tinytls/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m tinytls)
    ├── server.py            # TinyTLSServer: startup, accept loop, shutdown
    ├── config.py            # ServerConfig (frozen dataclass)
    ├── errors.py            # Fatal and per-connection errors
    ├── core/
    │   ├── listener.py      # bind / listen / accept
    │   ├── connection.py    # Connection wrapper and teardown
    │   ├── scheduler.py     # One-at-a-time scheduling policy
    │   └── handler.py       # One request per connection
    ├── security/
    │   ├── context.py       # Certificate, key, CA loading
    │   └── session.py       # TLS session state machine
    └── http/
        ├── request.py       # Request-line parsing
        └── response.py      # 200 OK page building

=============================================================================
QUICK START
=============================================================================

    from tinytls import TinyTLSServer, ServerConfig

    TinyTLSServer(ServerConfig(tls_enabled=False, port=8080)).run()

=============================================================================
"""

__version__ = "1.0.0"

from .server import TinyTLSServer
from .config import ServerConfig
from .errors import (
    ServerError,
    StartupError,
    IdentityLoadFailed,
    TrustRootLoadFailed,
    BindFailed,
    ListenFailed,
    AcceptFailed,
    HandshakeFailed,
)

__all__ = [
    "TinyTLSServer",
    "ServerConfig",
    "ServerError",
    "StartupError",
    "IdentityLoadFailed",
    "TrustRootLoadFailed",
    "BindFailed",
    "ListenFailed",
    "AcceptFailed",
    "HandshakeFailed",
    "__version__",
]
