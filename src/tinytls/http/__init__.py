"""
HTTP pieces: request-line parsing and response building.
"""

from .request import (
    RequestLine,
    parse_request_line,
    MAX_METHOD_LENGTH,
    MAX_TARGET_LENGTH,
)
from .response import (
    HTTPResponse,
    ResponseDocument,
    build_document,
    build_http_response,
    build_response,
    render_body,
)

__all__ = [
    "RequestLine",
    "parse_request_line",
    "MAX_METHOD_LENGTH",
    "MAX_TARGET_LENGTH",
    "HTTPResponse",
    "ResponseDocument",
    "build_document",
    "build_http_response",
    "build_response",
    "render_body",
]
