# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""
Folder listing.

ListingReconciler turns paginated delimiter listings into child nodes:
common prefixes become virtual folders, direct entries become files.
"""

import time
from typing import Dict, List, Optional, Set, Tuple

from ..client.exceptions import RemoteTransportError
from ..client.types import ListObjectsOptions, ObjectMetadata, ObjectSummary
from ..utils import logger, time_function
from .names import SEPARATOR
from .node import NodeKind, S3FileObject, guess_content_type


class ListingReconciler:
    """
    List the children of folder nodes.

    Args:
        page_size (int, optional): Maximum keys per listing request; None
            leaves it to the service.
    """

    def __init__(self, page_size: Optional[int] = None):
        self.page_size = page_size

    def _collect(self, folder: S3FileObject, prefix: str) -> Tuple[Dict[str, ObjectSummary], Set[str]]:
        objects: Dict[str, ObjectSummary] = {}
        prefixes: Set[str] = set()
        marker = None
        pages = 0
        while True:
            page = folder.service.list_objects(
                folder.bucket,
                ListObjectsOptions(prefix=prefix or None, delimiter=SEPARATOR, marker=marker, max_keys=self.page_size),
            )
            pages += 1
            for summary in page.objects:
                objects.setdefault(summary.key, summary)
            prefixes.update(page.common_prefixes)
            if not page.is_truncated:
                break
            if page.next_marker == marker:
                raise RemoteTransportError(f"Listing did not advance past marker {marker}",
                                           path=folder.path, operation="LIST")
            marker = page.next_marker
        logger.debug(f"Listed {folder.path}: {len(objects)} objects, {len(prefixes)} prefixes in {pages} page(s)")
        return objects, prefixes

    def list_children(self, folder: S3FileObject) -> List[S3FileObject]:
        """
        Resolve and attach the direct children of a folder.

        Folders come first, then files, each in lexical key order. A name
        that is both a prefix and an object is reported once, as a folder.
        """
        start_time = time.time()
        prefix = folder.folder_key
        objects, prefixes = self._collect(folder, prefix)

        children: Dict[str, S3FileObject] = {}
        for common_prefix in sorted(prefixes):
            name = common_prefix[len(prefix):].rstrip(SEPARATOR)
            if not name or name in children:
                continue
            child = folder.resolve_child(name)
            child.attach_metadata(NodeKind.VIRTUAL_FOLDER, common_prefix, ObjectMetadata.virtual_folder())
            child.parent = folder
            children[name] = child

        for key in sorted(objects):
            if key == prefix:
                continue
            name = key[len(prefix):].rstrip(SEPARATOR)
            if not name or name in children:
                continue
            summary = objects[key]
            child = folder.resolve_child(name)
            child.attach_metadata(NodeKind.FILE, key, ObjectMetadata.from_summary(summary, guess_content_type(name)))
            child.parent = folder
            children[name] = child

        time_function("list_children", start_time)
        return list(children.values())
