"""HTTP client for the inventory backend."""

import asyncio
from typing import Any, Dict, Optional

import requests
from pydantic import ValidationError

from ims_client.api.errors import (
    HTTP,
    HTTP_UNSTRUCTURED,
    TRANSPORT,
    ApiError,
    AuthenticationError,
)
from ims_client.api.models import ListResponse, LoginResponse
from ims_client.session import AuthSession
from ims_client.utils.logging import get_logger

logger = get_logger(__name__)


class ApiClient:
    """Authenticated JSON client bound to one backend and one session.

    Every 401 response logs the session out before AuthenticationError is
    raised, so callers never have to special-case expired tokens. The async
    methods run the HTTP call in a worker thread but log out on the event
    loop thread, so ``on_invalidate`` listeners may touch loop state.

    Requests go through the module-level ``requests.request`` (one
    connection per call), which is safe to use from several worker threads
    at once. ``http`` replaces it with any object exposing ``request``.
    """

    def __init__(
        self,
        base_url: str,
        session: AuthSession,
        *,
        timeout: float = 20,
        user_agent: str = "ims-client/0.1",
        http: Optional[Any] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session
        self.timeout = timeout
        self.user_agent = user_agent
        self.http = http or requests

    @classmethod
    def from_config(cls, config: Dict[str, Any], session: AuthSession) -> "ApiClient":
        api = config["api"]
        return cls(
            api["base_url"],
            session,
            timeout=api["timeout_seconds"],
            user_agent=api["user_agent"],
        )

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/json",
        }
        headers.update(self.session.auth_headers())
        return headers

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Issue a request and return the decoded JSON body.

        Args:
            method: HTTP method
            path: Path relative to the base URL (e.g. "/brands")
            params: Query parameters; None values are dropped
            json: Optional JSON request body

        Returns:
            Decoded JSON body, or None for an empty body

        Raises:
            AuthenticationError: On HTTP 401 (session already invalidated)
            ApiError: On transport failure or any other non-2xx response
        """
        try:
            return self._send(method, path, params=params, json=json)
        except AuthenticationError:
            self._invalidate_session(method, path)
            raise

    def _send(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        # Safe to run in a worker thread: never touches the session state.
        if params is not None:
            params = {k: v for k, v in params.items() if v is not None}
        url = self._url(path)
        logger.debug(f"{method} {url} params={params}")

        try:
            response = self.http.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._get_headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ApiError(f"Request to {path} failed: {e}", kind=TRANSPORT) from e

        if response.status_code == 401:
            message = _error_message(response) or "Unauthorized"
            raise AuthenticationError(message, status_code=401, kind=HTTP)

        if not 200 <= response.status_code < 300:
            message = _error_message(response)
            if message:
                raise ApiError(message, status_code=response.status_code, kind=HTTP)
            raise ApiError(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
                kind=HTTP_UNSTRUCTURED,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(
                f"{method} {path} returned a non-JSON body",
                status_code=response.status_code,
                kind=HTTP_UNSTRUCTURED,
            ) from e

    def _invalidate_session(self, method: str, path: str) -> None:
        logger.warning(f"{method} {path} returned 401, invalidating session")
        self.session.logout()

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.request("GET", path, params=params)

    def fetch_list(self, path: str, params: Optional[Dict[str, Any]] = None) -> ListResponse:
        """GET a paginated list endpoint and validate the body."""
        return _parse_list(path, self.get(path, params))

    async def aget(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Async ``get``: the HTTP call runs in a worker thread, the 401 logout on the loop."""
        try:
            return await asyncio.to_thread(self._send, "GET", path, params=params)
        except AuthenticationError:
            self._invalidate_session("GET", path)
            raise

    async def afetch_list(self, path: str, params: Optional[Dict[str, Any]] = None) -> ListResponse:
        return _parse_list(path, await self.aget(path, params))

    def login(self, username: str, password: str) -> LoginResponse:
        """
        Exchange credentials for a token and store it in the session.

        Raises:
            ApiError: On invalid credentials (HTTP 400) or a disabled account (HTTP 403)
        """
        body = self.request("POST", "/auth/login", json={"username": username, "password": password})
        try:
            result = LoginResponse.model_validate(body)
        except ValidationError as e:
            raise ApiError("Unexpected login response", status_code=200, kind=HTTP_UNSTRUCTURED) from e
        self.session.login(result.token, result.user.model_dump())
        return result

    def logout(self) -> None:
        self.session.logout()


def _error_message(response: requests.Response) -> Optional[str]:
    """Extract ``error`` from a ``{"error": message}`` body, if present."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("error"), str) and body["error"]:
        return body["error"]
    return None


def _parse_list(path: str, body: Any) -> ListResponse:
    try:
        return ListResponse.model_validate(body)
    except ValidationError as e:
        raise ApiError(
            f"Unexpected list response from {path}: {e.error_count()} validation error(s)",
            status_code=200,
            kind=HTTP_UNSTRUCTURED,
        ) from e
