# backend/marketchat/services/base.py
"""
Base Service Pattern for the messaging core

Provides common functionality for all service classes including:
- Transaction management
- Store error translation
- Logging
- Performance monitoring
"""

from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Iterator, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException, ServiceUnavailableException
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


class BaseService:
    """
    Base class for all service layer components.

    Provides common patterns for:
    - Database session management
    - Logging
    - Transaction handling
    - Performance monitoring
    """

    def __init__(self, db: Session):
        """
        Initialize base service.

        Args:
            db: Database session
        """
        self.db = db
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def store_access(self) -> Iterator[Session]:
        """
        Context manager for reads and writes against the durable store.

        Any store failure rolls the session back and surfaces as
        ServiceUnavailableException so callers can retry with backoff.
        Domain exceptions pass through untouched.
        """
        try:
            yield self.db
        except (RepositoryException, SQLAlchemyError) as e:
            self.logger.error(f"Store operation failed: {str(e)}")
            self._safe_rollback()
            raise ServiceUnavailableException(
                "Message store temporarily unavailable",
                code=STORE_UNAVAILABLE,
            ) from e

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Context manager for database transactions.

        Usage:
            with self.transaction():
                # Do multiple operations
                self.db.add(entity)
                # Note: commit is handled automatically
        """
        with self.store_access():
            try:
                yield self.db
                self.db.commit()
                self.logger.debug("Transaction committed successfully")
            except (RepositoryException, SQLAlchemyError):
                raise
            except Exception as e:
                self.logger.debug(f"Rolling back transaction: {type(e).__name__}")
                self.db.rollback()
                raise

    def release_session(self) -> None:
        """Return the session's connection to the pool (for long-lived responses)."""
        self.db.close()

    def _safe_rollback(self) -> None:
        try:
            self.db.rollback()
        except SQLAlchemyError as e:
            self.logger.warning(f"Rollback failed: {str(e)}")

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Decorator to measure operation performance.

        Usage:
            @BaseService.measure_operation("send_message")
            def send_message(self, ...):
                # Method implementation

        Args:
            operation_name: Name of the operation for metrics

        Returns:
            Decorator function
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self: "BaseService", *args: Any, **kwargs: Any) -> Any:
                start_time = time.time()
                success = False
                error_type = None

                try:
                    result = func(self, *args, **kwargs)
                    success = True
                    return result
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.time() - start_time
                    # Only log if it's actually slow
                    if elapsed > 1.0:
                        self.logger.warning(
                            f"Slow operation detected: {operation_name} took {elapsed:.2f}s"
                        )

                    prometheus_metrics.record_service_operation(
                        service=self.__class__.__name__,
                        operation=operation_name,
                        duration=elapsed,
                        status="success" if success else "error",
                        error_type=error_type,
                    )

            return cast(F, wrapper)

        return decorator

    def log_operation(self, operation: str, **context: Any) -> None:
        """
        Log an operation with context.

        Args:
            operation: Operation name
            **context: Additional context to log
        """
        self.logger.info(f"Operation: {operation}", extra={"operation": operation, **context})

