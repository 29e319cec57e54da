from typing import Any, Dict, Optional

from cbt.client.storage import MemoryStorage, Storage

TOKEN_KEY = "token"
USER_KEY = "user"
SESSION_KEY = "currentSession"
RESULTS_KEY = "examResults"


class SessionContext:
    """Client-side state for one signed-in user: token, user, running exam and last results."""

    def __init__(self, storage: Optional[Storage] = None):
        self.storage = storage if storage is not None else MemoryStorage()

    def _put(self, key: str, value: Any) -> None:
        if value is None:
            self.storage.delete(key)
        else:
            self.storage.set(key, value)

    @property
    def token(self) -> Optional[str]:
        return self.storage.get(TOKEN_KEY)

    @token.setter
    def token(self, value: Optional[str]) -> None:
        self._put(TOKEN_KEY, value)

    @property
    def user(self) -> Optional[Dict[str, Any]]:
        return self.storage.get(USER_KEY)

    @user.setter
    def user(self, value: Optional[Dict[str, Any]]) -> None:
        self._put(USER_KEY, value)

    @property
    def current_session(self) -> Optional[Dict[str, Any]]:
        return self.storage.get(SESSION_KEY)

    @current_session.setter
    def current_session(self, value: Optional[Dict[str, Any]]) -> None:
        self._put(SESSION_KEY, value)

    @property
    def exam_results(self) -> Optional[Dict[str, Any]]:
        return self.storage.get(RESULTS_KEY)

    @exam_results.setter
    def exam_results(self, value: Optional[Dict[str, Any]]) -> None:
        self._put(RESULTS_KEY, value)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @property
    def is_admin(self) -> bool:
        return bool(self.user) and self.user.get("role") == "admin"

    def clear(self) -> None:
        for key in (TOKEN_KEY, USER_KEY, SESSION_KEY, RESULTS_KEY):
            self.storage.delete(key)
