"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Every request gets the same kind of answer: 200 OK with a small HTML
page that names the server mode and echoes the request line back.

=============================================================================
HTTP RESPONSE ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     RESPONSE ON THE WIRE                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    HTTP/1.1 200 OK\r\n                    ← status line             │
    │    Content-Type: text/html\r\n            ← headers                 │
    │    Content-Length: 187\r\n                ← exact body byte count   │
    │    \r\n                                   ← blank line              │
    │    <html>...Method: GET...URL: /x...</html>   ← body               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

No Date, no Server header: two identical requests must produce
byte-identical responses, so nothing time- or connection-dependent may
appear in the output.

=============================================================================
NO FIXED BUFFERS
=============================================================================

The body is rendered into a str, encoded, and only THEN measured.
Content-Length therefore always equals len(body), and there is no
pre-sized buffer for a long target to overflow. The request tokens are
already bounded (see request.py), which keeps the whole response a few
hundred bytes.

Method and target are inserted unescaped, exactly as received.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict

from .request import RequestLine, REQUEST_ENCODING


BODY_TEMPLATE = (
    "<html>\n"
    "<head><title>Tiny {mode} Server</title></head>\n"
    "<body>\n"
    "<h1>Hello from the tiny {mode} server!</h1>\n"
    "<p>Mode: {mode_description}</p>\n"
    "<p>Method: {method}</p>\n"
    "<p>URL: {target}</p>\n"
    "</body>\n"
    "</html>\n"
)

CONTENT_TYPE = "text/html"


@dataclass(frozen=True)
class ResponseDocument:
    """Rendered HTML body plus its size in bytes."""

    body: bytes

    @property
    def content_length(self) -> int:
        return len(self.body)


@dataclass
class HTTPResponse:
    """
    An HTTP response ready to be serialized.

        HTTPResponse(body=b"...")  ──to_bytes()──►  b"HTTP/1.1 200 OK\\r\\n..."

    Content-Length is always computed from the body at serialization
    time and cannot be set by hand.
    """

    status: int = 200
    reason: str = "OK"
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """Format: HTTP-VERSION SP STATUS-CODE SP REASON-PHRASE"""
        return f"{self.version} {self.status} {self.reason}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a response header. Returns self for chaining."""
        self.headers[name] = value
        return self

    def to_bytes(self) -> bytes:
        """
        Serialize the response to bytes for sending over the socket.

            HTTP/1.1 200 OK\\r\\n
            Content-Type: text/html\\r\\n
            Content-Length: 187\\r\\n
            \\r\\n
            <body bytes>
        """
        response_headers = {
            name: value
            for name, value in self.headers.items()
            if name.lower() != "content-length"
        }
        response_headers["Content-Length"] = str(len(self.body))

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")

        # Empty line separates headers from body
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("ascii") + b"\r\n"
        return header_bytes + self.body


def render_body(method: str, target: str, tls_enabled: bool) -> str:
    """Fill the HTML template. Method and target are NOT escaped."""
    mode = "HTTPS" if tls_enabled else "HTTP"
    mode_description = "secure (TLS)" if tls_enabled else "plain (no TLS)"
    return BODY_TEMPLATE.format(
        mode=mode,
        mode_description=mode_description,
        method=method,
        target=target,
    )


def build_document(request_line: RequestLine, tls_enabled: bool) -> ResponseDocument:
    body = render_body(request_line.method, request_line.target, tls_enabled)
    # Parsed tokens are latin-1 already; "replace" only matters for callers
    # passing arbitrary str.
    return ResponseDocument(body=body.encode(REQUEST_ENCODING, errors="replace"))


def build_http_response(request_line: RequestLine, tls_enabled: bool) -> HTTPResponse:
    document = build_document(request_line, tls_enabled)
    return HTTPResponse(
        headers={
            "Content-Type": CONTENT_TYPE,
            "Content-Length": str(document.content_length),
        },
        body=document.body,
    )


def build_response(method: str, target: str, tls_enabled: bool) -> bytes:
    """
    Build the complete wire response for one request.

    Pure function: the same inputs always give the same bytes.

    Args:
        method: Request method as parsed (may be empty).
        target: Request target as parsed (may be empty).
        tls_enabled: Whether the server runs in secure mode.

    Returns:
        Status line, headers, blank line and body, ready for sendall().
    """
    request_line = RequestLine(method=method, target=target)
    return build_http_response(request_line, tls_enabled).to_bytes()
