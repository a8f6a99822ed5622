"""
Centralized error handling utilities for consistent error management across services.
"""
from functools import wraps
from typing import Any, Dict, Optional

from fastapi import HTTPException
from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)

from src.shared.exceptions import ConflictException
from src.shared.utils import get_logger


class ServiceError(Exception):
    """Base service error with context"""

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.original_error = original_error
        self.context = context or {}
        super().__init__(self.message)


class TransientStorageError(ServiceError):
    """The database could not be reached or timed out; the caller may retry."""


_TRANSIENT_DB_ERRORS = (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError)


def is_transient_database_error(error: BaseException) -> bool:
    if isinstance(error, _TRANSIENT_DB_ERRORS):
        return True
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return True
    # asyncpg raises OSError subclasses when the server is unreachable
    return isinstance(error, OSError)


class ErrorHandler:
    """Centralized error handler for services"""

    def __init__(self, logger_name: str):
        self.logger = get_logger(logger_name)

    def handle_database_error(
        self, error: Exception, operation: str, context: Optional[Dict[str, Any]] = None
    ) -> None:
        """Handle database-related errors with proper logging and exceptions"""
        context = context or {}

        if isinstance(error, IntegrityError):
            error_msg = str(error.orig) if hasattr(error, "orig") else str(error)
            self.logger.error(
                f"Database integrity error during {operation}: {error_msg}", extra=context
            )
            if "unique" in error_msg.lower() or "duplicate key" in error_msg.lower():
                raise ConflictException(detail=f"Resource already exists for {operation}")
            raise ServiceError(f"Data integrity error during {operation}", error, context)

        elif is_transient_database_error(error):
            self.logger.error(
                f"Database unavailable during {operation}: {error}", extra=context
            )
            raise TransientStorageError(
                f"Database unavailable during {operation}", error, context
            )

        elif isinstance(error, SQLAlchemyError):
            self.logger.error(f"SQLAlchemy error during {operation}: {error}", extra=context)
            raise ServiceError(f"Database operation failed for {operation}", error, context)

        else:
            # Not a database error, re-raise as is
            raise error

    def log_success(self, operation: str, context: Optional[Dict[str, Any]] = None) -> None:
        """Log successful operations"""
        self.logger.debug(f"Successfully completed {operation}", extra=context or {})


def handle_service_errors(operation: str):
    """Decorator translating database failures raised by async service methods."""

    def decorator(func):
        @wraps(func)
        async def wrapper(self, *args, **kwargs):
            error_handler = getattr(self, "_error_handler", None) or ErrorHandler(
                self.__class__.__name__
            )
            try:
                result = await func(self, *args, **kwargs)
            except (HTTPException, ServiceError):
                # Business errors and already-translated failures pass through
                raise
            except (SQLAlchemyError, OSError) as e:
                context = {
                    "method": func.__name__,
                    "function_args": str(args)[:100],
                    "function_kwargs": str(kwargs)[:100],
                }
                error_handler.handle_database_error(e, operation, context)
                raise
            error_handler.log_success(operation)
            return result

        return wrapper

    return decorator
