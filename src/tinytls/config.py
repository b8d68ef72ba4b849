"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized, immutable configuration for the server.

=============================================================================
WHY FROZEN?
=============================================================================

The server decides ONCE, at startup, whether it speaks TLS and which
credentials it uses. Nothing that happens on a connection may change
that decision for the next connection. A frozen dataclass makes this a
property of the type instead of a promise:

    config = ServerConfig(tls_enabled=False)
    config.tls_enabled = True      # dataclasses.FrozenInstanceError

The same value is handed to the listener, the handler and the server at
construction time. There is no module-level "use_tls" flag anywhere.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m tinytls --no-tls --port 9000                    │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── TINYTLS_PORT=9000 python -m tinytls                       │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import os
from dataclasses import dataclass, replace
from typing import Optional


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, timeout, request_buffer_size

    SECURITY SETTINGS
    - tls_enabled, cert_file, key_file, ca_file

    LOGGING
    - log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """
    The IP address to bind to. Default is every interface.
    """

    port: int = 8080
    """
    The port number to listen on. 0 asks the OS for a free port.
    """

    backlog: int = 1
    """
    Listen queue length. Connections are served one at a time, so a
    deep queue only hides a stalled server from its clients.
    """

    timeout: Optional[float] = None
    """
    Per-connection socket timeout in seconds, applied to the handshake,
    the read and the write.
    None = fully blocking: a silent peer stalls the server.
    """

    request_buffer_size: int = 4096
    """
    Size of the request buffer. One byte is reserved as the terminator,
    so at most request_buffer_size - 1 bytes are read per connection.
    """

    # ─────────────────────────────────────────────────────────────────────
    # SECURITY SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    tls_enabled: bool = True
    """
    Security mode. On by default; --no-tls turns it off.
    """

    cert_file: str = "server.crt"
    key_file: str = "server.key"
    ca_file: str = "ca.crt"
    """
    PEM files for the server identity and the trust root used to verify
    client certificates. Only read when tls_enabled is True.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"

    @property
    def address(self) -> tuple:
        return (self.host, self.port)

    @property
    def max_request_bytes(self) -> int:
        """Bytes actually read per request (one reserved for the terminator)."""
        return self.request_buffer_size - 1

    @property
    def mode_name(self) -> str:
        return "HTTPS" if self.tls_enabled else "HTTP"

    def with_overrides(self, **changes) -> "ServerConfig":
        """
        Return a copy with some fields changed.

        None values are ignored, so argparse results can be passed
        straight through:

            config.with_overrides(port=args.port, host=args.host)
        """
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        TINYTLS_HOST        Bind address (default: 0.0.0.0)
        TINYTLS_PORT        Listen port (default: 8080)
        TINYTLS_TLS         "0", "false", "no" or "off" disables TLS
        TINYTLS_CERT_FILE   Server certificate (default: server.crt)
        TINYTLS_KEY_FILE    Server private key (default: server.key)
        TINYTLS_CA_FILE     Trust root (default: ca.crt)
        TINYTLS_TIMEOUT     Connection timeout in seconds (default: none)
        TINYTLS_LOG_LEVEL   Logging level (default: INFO)

        =====================================================================
        """
        timeout = os.getenv("TINYTLS_TIMEOUT")
        return cls(
            host=os.getenv("TINYTLS_HOST", "0.0.0.0"),
            port=int(os.getenv("TINYTLS_PORT", "8080")),
            tls_enabled=os.getenv("TINYTLS_TLS", "1").strip().lower() not in _FALSE_VALUES,
            cert_file=os.getenv("TINYTLS_CERT_FILE", "server.crt"),
            key_file=os.getenv("TINYTLS_KEY_FILE", "server.key"),
            ca_file=os.getenv("TINYTLS_CA_FILE", "ca.crt"),
            timeout=float(timeout) if timeout else None,
            log_level=os.getenv("TINYTLS_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called at startup, before any socket or certificate is touched,
        so a typo fails immediately instead of on the first client.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.request_buffer_size < 64:
            raise ValueError("request_buffer_size must be >= 64")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.log_level}")

        if self.tls_enabled:
            for name in ("cert_file", "key_file", "ca_file"):
                if not getattr(self, name):
                    raise ValueError(f"{name} is required when TLS is enabled")
