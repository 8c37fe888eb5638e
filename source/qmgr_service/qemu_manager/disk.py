import os
import subprocess

from errors import AlreadyExists, ToolError, ValidationError
from .host import detect_host

DISK_MIN_GB = 1
DISK_MAX_GB = 1024


def create_disk_image(path: str, size_gb: int, qemu_img: str | None = None) -> str:
    """
    Create an empty qcow2 disk with qemu-img, blocking until the tool exits.

    Refuses to overwrite an existing file. Returns the path of the new image.
    """
    print("[qemu-img] Creating disk: ", path, size_gb)
    if not path or not path.strip():
        raise ValidationError("Disk path is required.")
    if not DISK_MIN_GB <= int(size_gb) <= DISK_MAX_GB:
        raise ValidationError(
            f"Disk size must be between {DISK_MIN_GB} and {DISK_MAX_GB} GB, got {size_gb}."
        )
    if os.path.exists(path):
        raise AlreadyExists(f"{path} already exists")

    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)

    args = [
        qemu_img or detect_host().qemu_img_bin,
        "create",
        "-f",
        "qcow2",
        path,
        f"{int(size_gb)}G",
    ]
    print(args)

    try:
        result = subprocess.run(args, capture_output=True, text=True)
    except OSError as e:
        print("[qemu-img] Could not start the tool:", e)
        raise ToolError(f"Failed to start qemu-img: {e}") from e

    if result.returncode != 0:
        print("[qemu-img] Command failed with error:", result.stderr)
        raise ToolError(
            f"qemu-img exited with {result.returncode}: {(result.stderr or '').strip()}"
        )
    return path
