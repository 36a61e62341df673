"""A small file-backed HTTP/1.1 request parser and handler."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

MAX_PATH = 256
MAX_METHOD = 10
MAX_VERSION = 10

HTTP_STATUS_200 = "200 OK"
HTTP_STATUS_201 = "201 Created"
HTTP_STATUS_204 = "204 No Content"
HTTP_STATUS_400 = "400 Bad Request"
HTTP_STATUS_404 = "404 Not Found"
HTTP_STATUS_500 = "500 Internal Server Error"
HTTP_STATUS_501 = "501 Not Implemented"

MIME_HTML = "text/html"
MIME_TXT = "text/plain"
MIME_JPG = "image/jpg"
MIME_PNG = "image/png"
MIME_CSS = "text/css"
MIME_JS = "applications/javascript"

POST_LOG = "post_log.txt"

_MIME_TYPES = {
    ".html": MIME_HTML,
    ".css": MIME_CSS,
    ".js": MIME_JS,
    ".jpg": MIME_JPG,
    ".png": MIME_PNG,
    ".txt": MIME_TXT,
}

_CONTENT_LENGTH = re.compile(rb"Content-Length:\s*([+-]?\d+)")

Root = Union[str, "os.PathLike[str]"]


class HttpParseError(ValueError):
    """Raised when a request line is incomplete or malformed."""


@dataclass
class HttpRequest:
    """A parsed HTTP request."""

    method: str
    path: str
    version: str
    body: Optional[bytes] = None
    content_length: int = 0


def get_mime_type(filename: str) -> str:
    """Return the MIME type for the extension after the last dot of ``filename``."""
    dot = filename.rfind(".")
    if dot < 0:
        return MIME_TXT
    return _MIME_TYPES.get(filename[dot:], MIME_TXT)


def parse_request(raw_request: Union[bytes, str]) -> HttpRequest:
    """Parse the request line, the Content-Length header and the body."""
    raw = raw_request.encode("latin-1") if isinstance(raw_request, str) else bytes(raw_request)
    tokens = raw.split(maxsplit=3)
    if len(tokens) < 3:
        raise HttpParseError("the HTTP request is incomplete or malformed")
    method, path, version = (token.decode("latin-1") for token in tokens[:3])
    method = method[: MAX_METHOD - 1]
    path = path[: MAX_PATH - 1]
    version = version[: MAX_VERSION - 1]
    if path == "/":
        path = "/index.html"

    content_length = 0
    position = raw.find(b"Content-Length:")
    if position >= 0:
        match = _CONTENT_LENGTH.match(raw, position)
        if match:
            content_length = int(match.group(1))

    body_start = raw.find(b"\r\n\r\n")
    body = raw[body_start + 4 :] if body_start >= 0 else None

    logger.debug("Method:%s | Path:%s | Version:%s", method, path, version)
    return HttpRequest(method, path, version, body, content_length)


def _file_path(request: HttpRequest, root: Root) -> Path:
    return Path(root, "." + request.path)


def _text_response(status: str, message: str) -> bytes:
    encoded = message.encode()
    return (
        f"HTTP/1.1 {status}\r\n"
        "Content-Type: text/plain\r\n"
        f"Content-Length: {len(encoded)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    ).encode() + encoded


def _not_found() -> bytes:
    return (
        f"HTTP/1.1 {HTTP_STATUS_404}\r\n"
        f"Content-Type: {MIME_TXT}\r\n"
        "Content-Length: 13\r\n"
        "\r\n404 Not Found"
    ).encode()


def _file_response(request: HttpRequest, root: Root, with_body: bool) -> bytes:
    try:
        content = _file_path(request, root).read_bytes()
    except OSError:
        return _not_found()
    header = (
        f"HTTP/1.1 {HTTP_STATUS_200}\r\n"
        f"Content-Type: {get_mime_type(request.path)}\r\n"
        f"Content-Length: {len(content)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    ).encode()
    return header + content if with_body else header


def handle_request(request: HttpRequest, root: Root = ".") -> bytes:
    """Dispatch ``request`` by method and return the full response."""
    handlers = {
        "GET": handle_get,
        "HEAD": handle_head,
        "POST": handle_post,
        "PUT": handle_put,
        "DELETE": handle_delete,
    }
    handler = handlers.get(request.method)
    if handler is None:
        return f"HTTP/1.1 {HTTP_STATUS_501}\r\n\r\nMethod not implemented.".encode()
    return handler(request, root)


def handle_get(request: HttpRequest, root: Root = ".") -> bytes:
    """Serve the requested file with its headers."""
    return _file_response(request, root, with_body=True)


def handle_head(request: HttpRequest, root: Root = ".") -> bytes:
    """Return the headers a GET of the same path would send."""
    return _file_response(request, root, with_body=False)


def handle_delete(request: HttpRequest, root: Root = ".") -> bytes:
    """Remove the requested file."""
    try:
        os.remove(_file_path(request, root))
    except OSError:
        return _text_response(HTTP_STATUS_404, "File not found or protected")
    return f"HTTP/1.1 {HTTP_STATUS_204}\r\nConnection: close\r\n\r\n".encode()


def handle_put(request: HttpRequest, root: Root = ".") -> bytes:
    """Store the request body at the requested path."""
    if request.content_length <= 0 or request.body is None:
        return _text_response(HTTP_STATUS_400, "No content provided.")
    try:
        with open(_file_path(request, root), "wb") as stream:
            stream.write(request.body[: request.content_length])
    except OSError:
        return _text_response(HTTP_STATUS_500, "Cannot write file.")
    return (
        f"HTTP/1.1 {HTTP_STATUS_201}\r\n"
        "Content-Type: text/plain\r\n"
        "Connection: close\r\n"
        "\r\n"
    ).encode()


def handle_post(request: HttpRequest, root: Root = ".") -> bytes:
    """Append the request body to the POST log."""
    if request.content_length <= 0:
        return _text_response(HTTP_STATUS_400, "Empty POST.")
    body = (request.body or b"")[: request.content_length]
    try:
        with open(Path(root, POST_LOG), "ab") as stream:
            stream.write(f"--- New POST ({request.content_length} bytes) ---\n".encode())
            stream.write(body)
            stream.write(b"\n")
    except OSError:
        return _text_response(HTTP_STATUS_500, "An error has occurred.")
    return _text_response(HTTP_STATUS_200, "POST received and logged.")