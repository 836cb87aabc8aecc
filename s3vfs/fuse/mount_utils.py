# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""
Helpers around the lifetime of an s3vfs mount.

Covers detaching the mountpoint, wiring SIGINT/SIGTERM to a clean
detach, and the option set handed to ``fuse.FUSE``.
"""

import signal
import subprocess
import sys
import time

from ..utils import logger, time_function

ATTR_TIMEOUT = 60


def _is_mounted(mountpoint):
    probe = subprocess.run(["mountpoint", "-q", mountpoint], check=False)
    return probe.returncode == 0


def unmount(mountpoint, fuse_ops=None):
    """
    Detach a mounted bucket with ``fusermount -u``.

    When ``fuse_ops`` is given its open write handles are committed first,
    so nothing buffered locally is lost with the mount.

    Args:
        mountpoint (str): Directory the bucket is mounted on
        fuse_ops (S3Fuse, optional): Operations object serving the mount

    Returns:
        bool: True when the mount was detached
    """
    started = time.time()
    target = mountpoint.rstrip('/')
    logger.info(f"Detaching {target}")

    if fuse_ops is not None:
        fuse_ops.release_all()

    if not _is_mounted(target):
        logger.warning(f"Nothing mounted at {target}")
        time_function("unmount", started)
        return False

    try:
        subprocess.run(["fusermount", "-u", target], check=True)
    except (OSError, subprocess.CalledProcessError) as e:
        logger.error(f"fusermount failed for {target}: {e}")
        print(f"Could not unmount {target}: {e}")
        time_function("unmount", started)
        return False

    logger.info(f"Detached {target}")
    print(f"{target} unmounted.")
    time_function("unmount", started)
    return True


def setup_signal_handlers(mountpoint, unmount_func):
    """
    Route SIGINT and SIGTERM to ``unmount_func(mountpoint)`` and exit.

    Returns:
        callable: The installed handler
    """
    def on_signal(signum, frame):
        logger.info(f"Got signal {signum}, detaching {mountpoint}")
        unmount_func(mountpoint)
        sys.exit(0)

    for signum in (signal.SIGINT, signal.SIGTERM):
        signal.signal(signum, on_signal)
    return on_signal


def get_mount_options(foreground=True, allow_other=False):
    """
    Build the keyword options passed to ``fuse.FUSE``.

    Attribute and entry caching stay short since other clients can change
    the bucket underneath the mount.

    Args:
        foreground (bool, optional): Keep the process attached. Defaults to True.
        allow_other (bool, optional): Let other users see the mount; needs
            'user_allow_other' in /etc/fuse.conf. Defaults to False.

    Returns:
        dict: FUSE mount options
    """
    options = dict(
        foreground=foreground,
        default_permissions=True,
        rw=True,
        big_writes=True,
        hard_remove=True,
        entry_timeout=ATTR_TIMEOUT,
        attr_timeout=ATTR_TIMEOUT,
        negative_timeout=1,
    )
    if allow_other:
        options['allow_other'] = True
    return options
