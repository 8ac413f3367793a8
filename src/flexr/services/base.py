"""
Base service classes.

Defines the common plumbing for services that sit on top of a WorkoutStore.
"""

from abc import ABC
from contextlib import contextmanager
from typing import Iterator, Optional
import logging

from ..db.adapters import WorkoutStore
from ..exceptions import DatabaseError, FlexrError


class BaseService(ABC):
    """
    Abstract base class for store-backed services.

    Provides common functionality:
    - Logging setup
    - Translation of raw store failures into DatabaseError
    """

    def __init__(
        self,
        store: WorkoutStore,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    @property
    def logger(self) -> logging.Logger:
        """Get the logger instance."""
        return self._logger

    @property
    def store(self) -> WorkoutStore:
        """Get the backing store."""
        return self._store

    @contextmanager
    def _data_access(self, operation: str) -> Iterator[None]:
        """Re-raise any non-domain failure inside the block as DatabaseError.

        Domain errors (validation, not found) pass through unchanged.
        """
        try:
            yield
        except FlexrError:
            raise
        except Exception as e:
            self._logger.error(f"Store operation '{operation}' failed: {e}")
            raise DatabaseError(
                f"Failed to {operation.replace('_', ' ')}",
                operation=operation,
                details={"reason": str(e)},
            ) from e
