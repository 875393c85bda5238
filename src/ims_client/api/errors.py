"""Errors raised by the API client."""

from typing import Optional

TRANSPORT = "transport"
HTTP = "http"
HTTP_UNSTRUCTURED = "http_unstructured"


class ApiError(RuntimeError):
    """A request to the backend failed.

    ``kind`` is one of:
    - ``transport``: no response at all (connection refused, timeout, ...)
    - ``http``: non-2xx response carrying a ``{"error": message}`` body
    - ``http_unstructured``: non-2xx response without one, or a 2xx body
      that does not have the expected shape
    """

    def __init__(self, message: str, *, status_code: Optional[int] = None, kind: str = HTTP):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.kind = kind

    def __repr__(self) -> str:
        return f"ApiError(kind={self.kind!r}, status_code={self.status_code!r}, message={self.message!r})"


class AuthenticationError(ApiError):
    """The backend rejected the session token (HTTP 401)."""
