"""
=============================================================================
MAIN SERVER
=============================================================================

Ties the pieces together into a running server.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   ServerConfig ──────────────┬───────────────┬──────────────┐       │
    │   (immutable)                │               │              │       │
    │                              ▼               ▼              ▼       │
    │                      SecurityContext      Listener    ConnectionHandler
    │                      (TLS mode only,      bind/listen       │       │
    │                       loaded ONCE)        accept()          │       │
    │                              │               │              │       │
    │                              │               ▼              │       │
    │                              │        ConnectionScheduler ──┘       │
    │                              │        (serial: runs inline)         │
    │                              │               │                      │
    │                              └──────► Connection ◄──────────┘       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
STARTUP ORDER
=============================================================================

    1. validate config                 ValueError
    2. load certificate, key, CA       IdentityLoadFailed / TrustRootLoadFailed
    3. bind + listen                   BindFailed / ListenFailed
    4. accept loop                     AcceptFailed (fatal)

Credentials are loaded BEFORE the port is bound: the server never
listens with a security context it could not build.

=============================================================================
SHUTDOWN
=============================================================================

There is no in-band shutdown command. The process stops on SIGINT or
SIGTERM (or shutdown() from another thread, which is what tests use):
the accept loop notices within one poll interval, the listening socket
is closed and run() returns. A signal that arrives while a client is
being served (or a second signal) raises KeyboardInterrupt instead, so
a peer stuck in the handshake or read cannot keep the process alive.

=============================================================================
"""

import logging
import signal
import threading
from typing import Optional, Tuple

from .config import ServerConfig
from .core import (
    Listener,
    AcceptTimeout,
    Connection,
    ConnectionHandler,
    ConnectionScheduler,
    SerialScheduler,
)
from .errors import AcceptFailed
from .security import SecurityContext


logger = logging.getLogger(__name__)


class TinyTLSServer:
    """
    Single-connection server with optional mutual TLS.

    =========================================================================
    USAGE
    =========================================================================

        # Secure mode (default): needs server.crt, server.key, ca.crt
        server = TinyTLSServer(ServerConfig())
        server.run()               # blocks until SIGINT / SIGTERM

        # Plain mode on a random port, driven from a test
        server = TinyTLSServer(ServerConfig(tls_enabled=False, port=0))
        server.start()
        host, port = server.address
        threading.Thread(target=server.serve_forever, daemon=True).start()
        ...
        server.shutdown()

    =========================================================================
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        scheduler: Optional[ConnectionScheduler] = None,
        security: Optional[SecurityContext] = None,
    ):
        """
        Args:
            config: Server configuration. Defaults if not provided.
            scheduler: Scheduling policy. Defaults to SerialScheduler.
            security: Pre-built SecurityContext. If None and TLS is
                enabled, one is loaded from the config's files in start().
        """
        self.config = config or ServerConfig()
        self.config.validate()  # Fail-fast on invalid config

        self._scheduler = scheduler or SerialScheduler()
        self._security = security
        self._listener = Listener(
            self.config.host,
            self.config.port,
            backlog=self.config.backlog,
        )
        self._handler: Optional[ConnectionHandler] = None

        self._running = False
        self._ready = threading.Event()
        self._stopped = threading.Event()
        self._original_handlers: dict = {}
        self._active_connection: Optional[Connection] = None

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound address (real port once started with port=0)."""
        return self._listener.address

    @property
    def security(self) -> Optional[SecurityContext]:
        return self._security

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> Tuple[str, int]:
        """
        Load credentials (TLS mode) and start listening. Does not block.

        Returns:
            The bound address.

        Raises:
            StartupError: IdentityLoadFailed, TrustRootLoadFailed,
                BindFailed or ListenFailed.
        """
        if self.config.tls_enabled and self._security is None:
            self._security = SecurityContext.from_config(self.config)

        self._handler = ConnectionHandler(self.config, self._security)

        address = self._listener.bind_and_listen()
        self._running = True
        self._stopped.clear()
        self._ready.set()

        logger.info(f"Server listening on {address[0]}:{address[1]} ({self.config.mode_name})")
        return address

    def serve_forever(self) -> None:
        """
        Accept and handle connections until shutdown().

        Raises:
            AcceptFailed: The listening socket broke. Fatal.
        """
        if not self._running:
            raise RuntimeError("Server is not started; call start() first")

        try:
            self._accept_loop()
        finally:
            self._cleanup()

    def run(self) -> None:
        """
        Start the server and block until it is stopped.

        Sets up logging, loads credentials, binds, installs SIGINT /
        SIGTERM handlers (main thread only) and serves.
        """
        self._setup_logging()
        self.start()
        self._print_startup_banner()

        self._setup_signals()
        try:
            self.serve_forever()
        finally:
            self._restore_signals()

    def shutdown(self) -> None:
        """
        Ask the accept loop to stop. Safe to call from any thread, from
        a signal handler, and more than once.
        """
        if self._running:
            logger.info("Shutting down server...")
        self._running = False

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until start() has bound the socket."""
        return self._ready.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Block until the accept loop has exited and cleaned up."""
        return self._stopped.wait(timeout)

    # =========================================================================
    # ACCEPT LOOP
    # =========================================================================

    def _accept_loop(self) -> None:
        while self._running:
            try:
                client_socket, client_address = self._listener.accept()
            except AcceptTimeout:
                continue
            except AcceptFailed as e:
                if not self._running:
                    break  # Listener closed during shutdown
                logger.critical(f"{e}")
                raise

            conn = Connection(
                socket=client_socket,
                address=client_address,
                timeout=self.config.timeout,
            )
            self._active_connection = conn
            try:
                self._scheduler.submit(self._handler.handle, conn)
            finally:
                self._active_connection = None

    def _cleanup(self) -> None:
        self._running = False
        self._scheduler.shutdown()
        self._listener.close()
        self._ready.clear()
        self._stopped.set()
        logger.info("Server stopped")

    # =========================================================================
    # SETUP HELPERS
    # =========================================================================

    def _setup_logging(self) -> None:
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("tinytls").setLevel(level)

    def _print_startup_banner(self) -> None:
        host, port = self.address
        scheme = "https" if self.config.tls_enabled else "http"
        print(f"Server listening on port {port}")
        print(f"  {scheme}://{host}:{port}  ({self.config.mode_name} mode)")
        if self.config.tls_enabled:
            print(f"  client certificates must be signed by {self.config.ca_file}")
        print("  Press Ctrl+C to stop")

    def _setup_signals(self) -> None:
        """
        Stop on SIGINT (Ctrl+C) and SIGTERM (kill, docker stop).

            idle in accept()         ──► shutdown(), loop exits within
                                         one poll interval
            client in flight, or     ──► KeyboardInterrupt: breaks out of
            already shutting down        a blocked handshake/read/write,
                                         the connection is still closed

        signal.signal() only works on the main thread; a server run from
        a worker thread is stopped with shutdown() instead.
        """
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            if self._running and self._active_connection is None:
                logger.info(f"Received {signal_name}, initiating shutdown...")
                self.shutdown()
                return

            logger.info(f"Received {signal_name}, interrupting current connection")
            self.shutdown()
            raise KeyboardInterrupt

        for sig in (signal.SIGINT, signal.SIGTERM):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self) -> None:
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()
