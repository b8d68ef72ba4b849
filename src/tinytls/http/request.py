"""
=============================================================================
REQUEST LINE PARSING
=============================================================================

The server looks at exactly one thing in a request: the first line.

    GET /index.html HTTP/1.1\r\n
    └┬┘ └────┬────┘ └───┬──┘
   method  target    version (ignored)

Headers and body are never inspected. There is no 400 Bad Request: if
the line is garbage, whatever tokens can be found are echoed back and
missing ones are empty strings.

=============================================================================
BOUNDED TOKENS
=============================================================================

Each token has a fixed-size slot, one byte of which is the terminator:

    ┌──────────┬───────────┬────────────────┐
    │  Token   │  Slot     │  Max length    │
    ├──────────┼───────────┼────────────────┤
    │  method  │  16 bytes │  15 bytes      │
    │  target  │  256 bytes│  255 bytes     │
    └──────────┴───────────┴────────────────┘

Longer tokens are cut at the limit. Each token is cut on its own, so
the tail of an over-long method never leaks into the target.

Bytes are decoded as latin-1: every byte maps to exactly one character,
so the response echoes the request bytes verbatim.

=============================================================================
"""

from dataclasses import dataclass


METHOD_BUFFER_SIZE = 16
TARGET_BUFFER_SIZE = 256

MAX_METHOD_LENGTH = METHOD_BUFFER_SIZE - 1
MAX_TARGET_LENGTH = TARGET_BUFFER_SIZE - 1

REQUEST_ENCODING = "latin-1"


@dataclass(frozen=True)
class RequestLine:
    """Parsed view of the first request line."""

    method: str = ""
    target: str = ""

    @property
    def is_complete(self) -> bool:
        """True when both tokens were present."""
        return bool(self.method and self.target)


def parse_request_line(data: bytes) -> RequestLine:
    """
    Parse method and target from the first line of a request buffer.

    Args:
        data: Raw bytes as read from the connection (may be empty,
              partial, or not HTTP at all).

    Returns:
        RequestLine with each token truncated to its bound. Missing
        tokens are empty strings; this never raises for bad input.

    Examples:
        >>> parse_request_line(b"GET /x HTTP/1.1\\r\\n\\r\\n")
        RequestLine(method='GET', target='/x')
        >>> parse_request_line(b"\\r\\n")
        RequestLine(method='', target='')
    """
    first_line = data.split(b"\n", 1)[0]

    # bytes.split() with no separator splits on runs of ASCII whitespace
    # (space, \t, \r, \v, \f) and drops leading/trailing whitespace.
    tokens = first_line.split(None, 2)

    method = tokens[0][:MAX_METHOD_LENGTH] if len(tokens) > 0 else b""
    target = tokens[1][:MAX_TARGET_LENGTH] if len(tokens) > 1 else b""

    return RequestLine(
        method=method.decode(REQUEST_ENCODING),
        target=target.decode(REQUEST_ENCODING),
    )
