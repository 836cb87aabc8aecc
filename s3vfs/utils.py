# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""
Utility functions for the s3vfs package.

This module provides the package logger and small helpers for timing
and tracing filesystem operations.
"""

import logging
import time
import os

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(funcName)s] - %(message)s'

logger = logging.getLogger('s3vfs')


def trace_enabled():
    """Return True when operation tracing is requested through S3VFS_TRACE_OPS."""
    return os.environ.get('S3VFS_TRACE_OPS', '').lower() in ('true', '1', 'yes')


def configure_logging(level=logging.INFO):
    """
    Configure root logging for command-line use.

    Library code only logs through ``logger``; entry points call this once.

    Args:
        level (int): Logging level for the s3vfs logger
    """
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logger.setLevel(level)


def time_function(func_name, start_time):
    """
    Helper function for timing operations.

    Calculates and logs the elapsed time for a function call.

    Args:
        func_name (str): Name of the function being timed
        start_time (float): Start time from time.time()

    Returns:
        float: Elapsed time in seconds
    """
    elapsed = time.time() - start_time
    logger.debug(f"{func_name} completed in {elapsed:.4f} seconds")
    return elapsed


def trace_op(operation, path, **details):
    """
    Trace a file operation for debugging purposes.

    Logs detailed information about file operations when the
    S3VFS_TRACE_OPS environment variable is set.

    Args:
        operation (str): The file operation being performed
        path (str): The path of the file being operated on
        **details: Additional details to log
    """
    if trace_enabled():
        detail_str = ', '.join(f"{k}={v}" for k, v in details.items())
        logger.debug(f"TRACE: {operation} on {path} {detail_str}")
