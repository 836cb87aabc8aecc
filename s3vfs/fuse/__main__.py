# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
import sys

from .fuse_mount import main

sys.exit(main())
