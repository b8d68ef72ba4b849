"""
=============================================================================
TINYTLS CLI ENTRY POINT
=============================================================================

    # Secure mode (default): server.crt, server.key, ca.crt in the cwd
    python -m tinytls

    # Plain-text mode
    python -m tinytls --no-tls

    # Other credentials / port
    python -m tinytls --cert certs/server.crt --key certs/server.key \\
                      --ca certs/ca.crt --port 8443

Exit codes:
    0   stopped by SIGINT / SIGTERM
    1   fatal server error (credentials, bind, listen, accept)
    2   invalid arguments or configuration

=============================================================================
"""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .config import ServerConfig, LOG_LEVELS
from .errors import ServerError
from .server import TinyTLSServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tinytls",
        description="Tiny single-connection server with optional mutual TLS",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m tinytls                         # TLS on port 8080
  python -m tinytls --no-tls                # Plain text
  python -m tinytls --port 8443 --ca my-ca.crt
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # SECURITY MODE
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--no-tls",
        dest="tls_enabled",
        action="store_false",
        default=None,
        help="Serve plain text instead of TLS",
    )

    parser.add_argument("--cert", dest="cert_file", help="Server certificate (default: server.crt)")
    parser.add_argument("--key", dest="key_file", help="Server private key (default: server.key)")
    parser.add_argument("--ca", dest="ca_file", help="CA for client certificates (default: ca.crt)")

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--host", "-H", help="Host to bind to (default: 0.0.0.0)")
    parser.add_argument("--port", "-p", type=int, help="Port to listen on (default: 8080)")
    parser.add_argument(
        "--timeout",
        type=float,
        help="Per-connection timeout in seconds (default: none, fully blocking)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # META
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"tinytls {__version__}",
    )

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Environment first, then command-line flags on top."""
    return ServerConfig.from_env().with_overrides(
        host=args.host,
        port=args.port,
        tls_enabled=args.tls_enabled,
        cert_file=args.cert_file,
        key_file=args.key_file,
        ca_file=args.ca_file,
        timeout=args.timeout,
        log_level=args.log_level,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = config_from_args(args)
        server = TinyTLSServer(config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        server.run()
    except ServerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        pass  # Signal arrived mid-connection; cleanup already ran

    return 0


if __name__ == "__main__":
    sys.exit(main())
