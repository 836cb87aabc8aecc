# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""Core virtual filesystem: registry, nodes, buffers, ACLs and listings."""
