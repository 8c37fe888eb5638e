"""Public API re-exports.

Everything that knows about QEMU itself: host detection, argv compilation and
disk images.
"""

from .host import HostProfile, detect_host, has_virtualization, make_profile
from .qemu_args import (
    build_command,
    compile_args,
    correct_accelerator,
    display_index,
    select_accelerator,
)
from .disk import create_disk_image

__all__ = [
    "HostProfile",
    "detect_host",
    "has_virtualization",
    "make_profile",
    "build_command",
    "compile_args",
    "correct_accelerator",
    "display_index",
    "select_accelerator",
    "create_disk_image",
]
