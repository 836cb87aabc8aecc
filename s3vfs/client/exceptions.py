# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""
Error taxonomy for s3vfs.

Every operation raises a subclass of S3VfsError. The ``code`` attribute is
the error-kind tag callers can switch on without knowing the transport.
"""


class S3VfsError(Exception):
    """Base exception for s3vfs errors."""
    def __init__(self, message: str, code: str = "ERR_UNKNOWN", path: str = None, operation: str = None):
        self.code = code
        self.message = message
        self.path = path
        self.operation = operation
        context = []
        if operation:
            context.append(f"operation={operation}")
        if path:
            context.append(f"path={path}")
        suffix = f" [{', '.join(context)}]" if context else ""
        super().__init__(f"{code}: {message}{suffix}")


class NotFoundError(S3VfsError):
    """No backing object or prefix exists."""
    def __init__(self, message: str, path: str = None, operation: str = None):
        super().__init__(message, code="ERR_NOT_FOUND", path=path, operation=operation)


class AlreadyExistsError(S3VfsError):
    """The node already exists."""
    def __init__(self, message: str, path: str = None, operation: str = None):
        super().__init__(message, code="ERR_ALREADY_EXISTS", path=path, operation=operation)


class TypeConflictError(S3VfsError):
    """The operation does not apply to the node's type (file vs folder)."""
    def __init__(self, message: str, path: str = None, operation: str = None):
        super().__init__(message, code="ERR_TYPE_CONFLICT", path=path, operation=operation)


class AlreadyWritingError(S3VfsError):
    """A write stream is already open on the node."""
    def __init__(self, message: str = "File already open for writing", path: str = None):
        super().__init__(message, code="ERR_ALREADY_WRITING", path=path, operation="WRITE")


class BufferExpiredError(S3VfsError):
    """A released temp buffer was used again."""
    def __init__(self, message: str = "Buffer no longer available", path: str = None):
        super().__init__(message, code="ERR_BUFFER_EXPIRED", path=path)


class IllegalReattachError(S3VfsError):
    """Attach was called on a node that is already attached."""
    def __init__(self, message: str = "Node is already attached", path: str = None):
        super().__init__(message, code="ERR_ILLEGAL_REATTACH", path=path, operation="ATTACH")


class RemoteTransportError(S3VfsError):
    """The remote service failed (network, auth, quota)."""
    def __init__(self, message: str, path: str = None, operation: str = None, status_code: int = None):
        self.status_code = status_code
        super().__init__(message, code="ERR_REMOTE", path=path, operation=operation)


class UnsupportedOperationError(S3VfsError):
    """The operation is not supported for this node or backend."""
    def __init__(self, message: str, path: str = None, operation: str = None):
        super().__init__(message, code="ERR_UNSUPPORTED", path=path, operation=operation)


class ConfigurationError(S3VfsError):
    """Configuration or credential error."""
    def __init__(self, message: str):
        super().__init__(message, code="ERR_CONFIG")


class LocalResourceError(S3VfsError):
    """Local temp storage could not be allocated or written."""
    def __init__(self, message: str, path: str = None, operation: str = None):
        super().__init__(message, code="ERR_LOCAL_RESOURCE", path=path, operation=operation)
