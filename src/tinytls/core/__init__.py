"""
Core server components.

- listener:   bind / listen / accept
- connection: per-client socket wrapper and teardown
- scheduler:  when and where a handler runs
- handler:    one request per connection
"""

from .listener import Listener, AcceptTimeout
from .connection import Connection, ConnectionState
from .scheduler import ConnectionScheduler, SerialScheduler
from .handler import ConnectionHandler

__all__ = [
    "Listener",
    "AcceptTimeout",
    "Connection",
    "ConnectionState",
    "ConnectionScheduler",
    "SerialScheduler",
    "ConnectionHandler",
]
