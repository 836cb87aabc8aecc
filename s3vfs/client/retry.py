# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""
Retry Module.

This module provides a retry decorator with exponential backoff for S3 client
operations. It retries throttling, server-side and connection failures, and
converts every other botocore failure into an s3vfs error so that no
transport-specific exception type leaks to callers.

Functions:
    retry: Decorator for retrying functions with exponential backoff.
    _convert_client_error: Helper function to convert botocore errors to s3vfs exceptions.
"""
import time
from functools import wraps
from typing import Type, Callable, Any, Tuple

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)

from ..utils import logger
from .exceptions import S3VfsError, NotFoundError, RemoteTransportError, ConfigurationError

RETRYABLE_ERROR_CODES = {
    "Throttling",
    "ThrottlingException",
    "SlowDown",
    "RequestTimeout",
    "RequestLimitExceeded",
    "InternalError",
    "ServiceUnavailable",
    "500",
    "502",
    "503",
    "504",
}

NOT_FOUND_ERROR_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}

CONNECTION_ERRORS = (EndpointConnectionError, ConnectionClosedError, ReadTimeoutError)


def _error_code(e: ClientError) -> str:
    return str(e.response.get("Error", {}).get("Code", ""))


def _status_code(e: ClientError):
    return e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")


def _convert_client_error(e: Exception, operation: str = None, path: str = None) -> S3VfsError:
    """
    Convert botocore errors to s3vfs errors.

    Args:
        e (Exception): The botocore error to convert.
        operation (str, optional): The operation being performed. Defaults to None.
        path (str, optional): Bucket/key the operation targeted. Defaults to None.

    Returns:
        S3VfsError: The converted error, chained to ``e`` by the caller.
    """
    if isinstance(e, NoCredentialsError):
        return ConfigurationError(f"No credentials available: {e}")

    if isinstance(e, ClientError):
        code = _error_code(e)
        status = _status_code(e)
        message = e.response.get("Error", {}).get("Message") or str(e)
        if code in NOT_FOUND_ERROR_CODES or status == 404:
            return NotFoundError(f"{code or 'NotFound'}: {message}", path=path, operation=operation)
        return RemoteTransportError(f"{code}: {message}", path=path, operation=operation, status_code=status)

    return RemoteTransportError(str(e), path=path, operation=operation)


def _target(args: Tuple[Any, ...], kwargs: dict) -> str:
    # (self, bucket, key, ...) for most client methods
    bucket = kwargs.get("bucket", args[1] if len(args) > 1 else None)
    key = kwargs.get("key", args[2] if len(args) > 2 and isinstance(args[2], str) else None)
    if bucket is None:
        return None
    return f"{bucket}/{key}" if key else str(bucket)


def retry(
    max_attempts: int = 5,
    initial_backoff: float = 0.1,
    max_backoff: float = 5.0,
    backoff_multiplier: float = 2.0,
    retryable_exceptions: Tuple[Type[Exception], ...] = (ClientError,) + CONNECTION_ERRORS
) -> Callable:
    """
    Decorator for retrying a function with exponential backoff.

    This decorator wraps a function to automatically retry it when specified
    exceptions occur, with an exponential backoff delay between attempts.

    Args:
        max_attempts (int): Maximum number of attempts. Defaults to 5.
        initial_backoff (float): Initial backoff time in seconds. Defaults to 0.1.
        max_backoff (float): Maximum backoff time in seconds. Defaults to 5.0.
        backoff_multiplier (float): Multiplier for exponential backoff. Defaults to 2.0.
        retryable_exceptions (Tuple[Type[Exception], ...]): Exceptions that may trigger a retry.
            Client errors are only retried when their code is in RETRYABLE_ERROR_CODES.

    Returns:
        Callable: A decorator that wraps the function.
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            """
            Executes the function with retry logic and exponential backoff.

            Returns:
                Any: Result of the function call.

            Raises:
                S3VfsError: If the call fails with a non-retryable error or all attempts fail.
            """
            last_exception = None
            backoff = initial_backoff
            operation = func.__name__.lstrip("_").upper()
            path = _target(args, kwargs)

            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except S3VfsError:
                    raise
                except retryable_exceptions as e:
                    last_exception = e

                    if isinstance(e, ClientError):
                        code = _error_code(e)
                        if code not in RETRYABLE_ERROR_CODES:
                            logger.debug(f"Non-retryable error ({code}) during {func.__name__} on {path}")
                            raise _convert_client_error(e, operation, path) from e
                        logger.warning(f"Retryable error ({code}) during {func.__name__}. "
                                       f"Attempt {attempt + 1}/{max_attempts}. Retrying after {backoff:.2f}s...")
                    else:
                        logger.warning(f"Connection error {type(e).__name__} during {func.__name__}. "
                                       f"Attempt {attempt + 1}/{max_attempts}. Retrying after {backoff:.2f}s...")

                    if attempt < max_attempts - 1:
                        time.sleep(backoff)
                        backoff = min(backoff * backoff_multiplier, max_backoff)
                except BotoCoreError as e:
                    raise _convert_client_error(e, operation, path) from e

            raise RemoteTransportError(
                f"Operation failed after {max_attempts} attempts: {last_exception}",
                path=path,
                operation=operation,
            ) from last_exception

        return wrapper
    return decorator
