"""
Client session providers — where the bearer token and role come from.

Components ask a provider instead of reading stored JSON themselves, so
tests can hand in an in-memory one.
"""
import json
import os
from typing import Callable, List, Optional

ROLE_HOME_PATHS = {
    "admin": "/admin/dashboard",
    "university": "/university/dashboard",
    "partner": "/partner/dashboard",
    "finance": "/finance/dashboard",
    "student": "/dashboard",
}


def home_path_for_role(role: Optional[str]) -> str:
    """Landing page after login; unknown roles go to the student dashboard."""
    return ROLE_HOME_PATHS.get(role or "", "/dashboard")


class SessionProvider:
    """get_token / get_role / on_session_change capability."""

    def __init__(self):
        self._listeners: List[Callable[[Optional[dict]], None]] = []

    def get_token(self) -> Optional[str]:
        user = self.get_user()
        return user.get("token") if user else None

    def get_role(self) -> Optional[str]:
        user = self.get_user()
        return user.get("role") if user else None

    def get_user(self) -> Optional[dict]:
        raise NotImplementedError

    def set_user(self, user: Optional[dict]) -> None:
        self._store(user)
        for callback in list(self._listeners):
            callback(user)

    def clear(self) -> None:
        self.set_user(None)

    def on_session_change(self, callback: Callable[[Optional[dict]], None]) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _store(self, user: Optional[dict]) -> None:
        raise NotImplementedError


class InMemorySessionProvider(SessionProvider):

    def __init__(self, user: Optional[dict] = None):
        super().__init__()
        self._user = user

    def get_user(self) -> Optional[dict]:
        return self._user

    def _store(self, user: Optional[dict]) -> None:
        self._user = user


class JsonFileSessionProvider(SessionProvider):
    """Persists ``{token, role, ...}`` as JSON on disk, like a browser's localStorage entry."""

    def __init__(self, path: str):
        super().__init__()
        self.path = path

    def get_user(self) -> Optional[dict]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            # Corrupt file: treat as logged out
            return None
        return data if isinstance(data, dict) else None

    def _store(self, user: Optional[dict]) -> None:
        if user is None:
            if os.path.exists(self.path):
                os.remove(self.path)
            return
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(user, f)
