"""Authenticated session state.

One AuthSession lives for the lifetime of an application session and is
handed explicitly to the API client, list controllers and comboboxes.
"""

import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ims_client.utils.debounce import Debouncer
from ims_client.utils.logging import get_logger

logger = get_logger(__name__)

ADMIN_ROLES = frozenset({"ADMIN", "SUPER_ADMIN"})


class AuthSession:
    """Bearer token plus the logged-in user."""

    def __init__(
        self,
        token: Optional[str] = None,
        user: Optional[Dict[str, Any]] = None,
        path: Optional[Path] = None,
    ):
        self.token = token
        self.user = user
        self.path = path
        self._listeners: List[Callable[["AuthSession"], None]] = []

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @property
    def is_admin(self) -> bool:
        return bool(self.user) and self.user.get("role") in ADMIN_ROLES

    def auth_headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def login(self, token: str, user: Dict[str, Any]) -> None:
        self.token = token
        self.user = user
        logger.info(f"Logged in as {user.get('username', 'unknown')}")
        if self.path is not None:
            self.save()

    def logout(self) -> None:
        """Clear credentials and notify listeners (no-op when already logged out)."""
        if not self.is_authenticated and self.user is None:
            return
        username = (self.user or {}).get("username", "unknown")
        self.token = None
        self.user = None
        logger.info(f"Session for {username} ended")
        if self.path is not None:
            self.save()
        for listener in list(self._listeners):
            listener(self)

    def on_invalidate(self, callback: Callable[["AuthSession"], None]) -> Callable[[], None]:
        """
        Register a callback fired on logout.

        Returns:
            Function that unregisters the callback
        """
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def save(self) -> None:
        if self.path is None:
            raise ValueError("Session has no storage path")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump({"token": self.token, "user": self.user}, f, indent=2)

    @classmethod
    def load(cls, path: Path) -> "AuthSession":
        """
        Restore a persisted session.

        A missing or unreadable file yields a logged-out session bound to
        ``path`` so a later login persists there.
        """
        if not path.exists():
            return cls(path=path)
        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable session file {path}: {e}")
            return cls(path=path)
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed session file {path}")
            return cls(path=path)
        return cls(token=data.get("token"), user=data.get("user"), path=path)


class IdleTimer:
    """Logs the session out once no activity was seen for ``timeout_seconds``."""

    def __init__(self, session: AuthSession, timeout_seconds: float):
        self.session = session
        self.timeout_seconds = timeout_seconds
        self._debouncer = Debouncer(timeout_seconds * 1000.0, on_commit=self._on_idle)

    @classmethod
    def from_config(cls, session: AuthSession, config: Dict[str, Any]) -> "IdleTimer":
        return cls(session, config["session"]["idle_timeout_seconds"])

    def touch(self) -> None:
        """Record user activity, re-arming the idle timeout."""
        self._debouncer.push(None)

    def stop(self) -> None:
        self._debouncer.cancel()

    @property
    def armed(self) -> bool:
        return self._debouncer.pending

    def _on_idle(self, _value: Any) -> None:
        if self.session.is_authenticated:
            logger.info(f"Idle for {self.timeout_seconds}s, logging out")
            self.session.logout()
