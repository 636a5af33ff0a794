"""Public shared HTTP API for internal edudesk packages."""

from .client import AsyncHttpClient, decode_json_body
from .errors import (
    HttpClientError,
    HttpJsonDecodeError,
    HttpRequestError,
)

__all__ = [
    "AsyncHttpClient",
    "HttpClientError",
    "HttpJsonDecodeError",
    "HttpRequestError",
    "decode_json_body",
]
