"""Process-wide identity of the signed-in user on a device."""

import logging
import threading
import uuid
from functools import lru_cache
from typing import Optional

logger = logging.getLogger(__name__)


class SessionIdentity:
    """Thread-safe holder for the current user id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._user_id: Optional[str] = None

    @property
    def user_id(self) -> Optional[str]:
        with self._lock:
            return self._user_id

    def set_user_id(self, user_id: str) -> str:
        """Store a user id in canonical UUID form.

        Raises:
            ValueError: If user_id is not a UUID
        """
        canonical = str(uuid.UUID(str(user_id)))
        with self._lock:
            changed = canonical != self._user_id
            self._user_id = canonical
        if changed:
            logger.info("Session identity updated")
        return canonical

    def clear(self) -> None:
        with self._lock:
            self._user_id = None


@lru_cache
def get_session_identity() -> SessionIdentity:
    """Get the process-wide session identity."""
    return SessionIdentity()
