# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""
Access control.

Acl is a portable 3x2 matrix of groups (owner, authorized users, everyone)
by permissions (read, write). AclTranslator maps it to and from the
allow-only grant lists of S3.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict

from ..client.exceptions import UnsupportedOperationError
from ..client.types import (
    ALL_USERS_URI,
    AUTHENTICATED_USERS_URI,
    CANONICAL_USER_GRANTEE,
    FULL_CONTROL,
    GROUP_GRANTEE,
    READ,
    WRITE,
    AccessControlList,
    Grantee,
)
from ..utils import logger
from .node import NodeKind


class Group(Enum):
    OWNER = "owner"
    AUTHORIZED = "authorized"
    EVERYONE = "everyone"


class Permission(Enum):
    READ = "read"
    WRITE = "write"


class Acl:
    """
    Full group x permission matrix; every entry starts denied.

    Example:
        acl = Acl()
        acl.allow(Group.OWNER, Permission.READ, Permission.WRITE)
        acl.allow(Group.EVERYONE, Permission.READ)
    """

    def __init__(self):
        self._rules: Dict[Group, Dict[Permission, bool]] = {
            group: {permission: False for permission in Permission} for group in Group
        }

    def allow(self, group: Group, *permissions: Permission) -> "Acl":
        for permission in permissions or tuple(Permission):
            self._rules[group][permission] = True
        return self

    def deny(self, group: Group, *permissions: Permission) -> "Acl":
        for permission in permissions or tuple(Permission):
            self._rules[group][permission] = False
        return self

    def allow_all(self) -> "Acl":
        for group in Group:
            self.allow(group)
        return self

    def deny_all(self) -> "Acl":
        for group in Group:
            self.deny(group)
        return self

    def is_allowed(self, group: Group, permission: Permission) -> bool:
        return self._rules[group][permission]

    def is_denied(self, group: Group, permission: Permission) -> bool:
        return not self._rules[group][permission]

    def rules(self) -> Dict[Group, Dict[Permission, bool]]:
        return {group: dict(row) for group, row in self._rules.items()}

    def __eq__(self, other):
        if not isinstance(other, Acl):
            return NotImplemented
        return self._rules == other._rules

    def __repr__(self):
        cells = []
        for group in Group:
            flags = "".join(
                flag if self._rules[group][permission] else "-"
                for permission, flag in ((Permission.READ, "r"), (Permission.WRITE, "w"))
            )
            cells.append(f"{group.value}={flags}")
        return f"Acl({', '.join(cells)})"


@dataclass(frozen=True)
class PlatformFeatures:
    """
    Capabilities of the hosting environment.

    Attributes:
        allow_deny_for_owner (bool): Whether the owner's own grant may be
            removed. When False, apply always grants the owner full control.
        supports_per_file_locking (bool): Whether per-node locks may be used.
    """
    allow_deny_for_owner: bool = True
    supports_per_file_locking: bool = True


_PERMISSIONS_BY_LEVEL = {
    FULL_CONTROL: (Permission.READ, Permission.WRITE),
    READ: (Permission.READ,),
    WRITE: (Permission.WRITE,),
}

_GROUP_URIS = {
    ALL_USERS_URI: Group.EVERYONE,
    AUTHENTICATED_USERS_URI: Group.AUTHORIZED,
}


class AclTranslator:
    """
    Fetch and apply Acl matrices on nodes.

    The bucket root uses the bucket ACL; files and folders with a backing
    object use the object ACL. New and virtual-folder nodes have no ACL.
    """

    def __init__(self, features: PlatformFeatures = None):
        self.features = features or PlatformFeatures()

    def _acl_key(self, node, operation: str):
        if node.is_root:
            return None
        kind = node.get_type()
        if kind is NodeKind.NEW or kind is NodeKind.VIRTUAL_FOLDER:
            raise UnsupportedOperationError(f"A {kind.value} node has no ACL", path=node.path, operation=operation)
        return node.object_key

    def fetch(self, node) -> Acl:
        """
        Read the node's grant list as an Acl.

        Grants for unknown grantees or permissions are skipped.
        """
        key = self._acl_key(node, "GET_ACL")
        remote = node.service.get_acl(node.bucket, key)
        node.cached_owner = remote.owner
        owner_id = remote.owner.id if remote.owner is not None else None

        acl = Acl()
        for grant in remote.grants:
            permissions = _PERMISSIONS_BY_LEVEL.get(grant.permission)
            if permissions is None:
                logger.warning(f"Skipping unknown permission {grant.permission} on {node.path}")
                continue
            group = self._group_of(grant.grantee, owner_id)
            if group is None:
                logger.debug(f"Skipping grant to {grant.grantee.type}:{grant.grantee.identifier} on {node.path}")
                continue
            acl.allow(group, *permissions)
        return acl

    @staticmethod
    def _group_of(grantee: Grantee, owner_id):
        if grantee.type == GROUP_GRANTEE:
            return _GROUP_URIS.get(grantee.identifier)
        if grantee.type == CANONICAL_USER_GRANTEE and owner_id is not None and grantee.identifier == owner_id:
            return Group.OWNER
        return None

    def apply(self, node, acl: Acl) -> None:
        """
        Replace the node's grant list with one built from the Acl.

        A group allowed both permissions gets FULL_CONTROL, a group allowed one
        gets that one, and a group allowed none gets no grant at all.

        Raises:
            UnsupportedOperationError: If the node has no ACL or its owner
                cannot be determined.
        """
        key = self._acl_key(node, "SET_ACL")
        owner = node.cached_owner
        if owner is None:
            owner = node.service.get_acl(node.bucket, key).owner
        if owner is None:
            raise UnsupportedOperationError("Cannot determine the owner", path=node.path, operation="SET_ACL")

        remote = AccessControlList(owner=owner)
        for group in Group:
            level = self._level_for(acl, group)
            if group is Group.OWNER and not self.features.allow_deny_for_owner and level != FULL_CONTROL:
                logger.warning(f"Owner access cannot be restricted here, granting full control on {node.path}")
                level = FULL_CONTROL
            if level is None:
                continue
            remote.grant(self._grantee_for(group, owner.id), level)

        node.service.put_acl(node.bucket, key, remote)
        node.cached_owner = owner
        logger.debug(f"Applied {acl!r} to {node.path}")

    @staticmethod
    def _level_for(acl: Acl, group: Group):
        read = acl.is_allowed(group, Permission.READ)
        write = acl.is_allowed(group, Permission.WRITE)
        if read and write:
            return FULL_CONTROL
        if read:
            return READ
        if write:
            return WRITE
        return None

    @staticmethod
    def _grantee_for(group: Group, owner_id: str) -> Grantee:
        if group is Group.OWNER:
            return Grantee.canonical_user(owner_id)
        if group is Group.AUTHORIZED:
            return Grantee.group(AUTHENTICATED_USERS_URI)
        return Grantee.group(ALL_USERS_URI)
