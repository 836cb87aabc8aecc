# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""FUSE mount of an s3vfs filesystem. Requires fusepy and libfuse."""
